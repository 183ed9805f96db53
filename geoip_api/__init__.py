"""
GeoIP API: IP geolocation over a local MaxMind database with scheduled refresh
"""
