# tests/conftest.py
import io
import ipaddress
import tarfile
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from geoip_api.main import create_app
from geoip_api.refresher import DatabaseRefresher
from geoip_api.store import LocationStore, StoreHolder

GOOGLE_DNS = {
    "continent": {"code": "NA", "names": {"en": "North America"}},
    "country": {"iso_code": "US", "names": {"en": "United States", "de": "USA"}},
    "location": {"latitude": 37.751, "longitude": -97.822, "time_zone": "America/Chicago"},
    "registered_country": {"iso_code": "US"},
}

MUNICH = {
    "city": {"names": {"en": "Munich", "de": "München"}},
    "continent": {"code": "EU"},
    "country": {"iso_code": "DE", "names": {"en": "Germany", "de": "Deutschland"}},
    "location": {"latitude": 48.1374, "longitude": 11.5755, "time_zone": "Europe/Berlin"},
    "postal": {"code": "80331"},
    "subdivisions": [
        {"iso_code": "BY", "names": {"en": "Bavaria", "de": "Bayern"}},
        {"iso_code": "09", "names": {"en": "Upper Bavaria", "de": "Oberbayern"}},
    ],
}

CITY_ARCHIVE_MEMBERS = {
    "GeoLite2-City_20240102/COPYRIGHT.txt": b"copyright",
    "GeoLite2-City_20240102/GeoLite2-City.mmdb": b"generation-2",
}

RECORDS = {
    "8.8.8.8": GOOGLE_DNS,
    "2a00:1450::1": MUNICH,
}


class FakeReader:
    """Dict-backed stand-in for a maxminddb reader"""

    def __init__(self, records=None, database_type="GeoLite2-City", build_epoch=1700000000):
        self.records = RECORDS if records is None else records
        self.database_type = database_type
        self.build_epoch = build_epoch
        self.closed = False

    def get(self, ip):
        ipaddress.ip_address(ip)  # ValueError like maxminddb
        return self.records.get(ip)

    def metadata(self):
        return SimpleNamespace(database_type=self.database_type,
                               build_epoch=self.build_epoch, node_count=42)

    def close(self):
        self.closed = True


def fake_opener(records=None):
    def opener(path, generation=1):
        return LocationStore(FakeReader(records), path, generation=generation)
    return opener


class FakeResponse:
    def __init__(self, status_code=200, body=b"", headers=None, text=""):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self.body = body
        self.headers = headers if headers is not None else {"Content-Length": str(len(body))}
        self.text = text

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.body), chunk_size):
            yield self.body[i:i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """Records outbound calls; responses are looked up by edition name in the URL"""

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls = []
        self.headers = {}

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        for key, response in self.responses.items():
            if key in url:
                if isinstance(response, Exception):
                    raise response
                return response
        return FakeResponse(status_code=404)


def make_archive(members):
    """gzip tar bytes from {name: content}"""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, content in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return buf.getvalue()


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "GeoLite2-City.mmdb"
    path.write_bytes(b"generation-1")
    return str(path)


@pytest.fixture
def holder(db_path):
    store_holder = StoreHolder(opener=fake_opener())
    store_holder.open(db_path)
    return store_holder


@pytest.fixture
def client(holder):
    refresher = DatabaseRefresher(holder, [], license_key="", session=FakeSession())
    app = create_app(holder=holder, refresher=refresher)
    with TestClient(app) as test_client:
        yield test_client
