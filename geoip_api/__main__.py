import os
import sys
import logging

import uvicorn

from . import config


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv

    # GEOIP_RS_DB_PATH wins over the positional argument
    if not os.getenv("GEOIP_RS_DB_PATH") and argv:
        os.environ["GEOIP_RS_DB_PATH"] = argv[0]

    try:
        config.get_db_path()
    except config.ConfigError as e:
        print(f"geoip-api: {e}", file=sys.stderr)
        return 2

    from .main import app

    logging.getLogger("geoip").info(f"Listening on http://{config.HOST}:{config.PORT}")
    uvicorn.run(
        app,
        host=config.HOST,
        port=config.PORT,
        reload=False,
        access_log=True,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
