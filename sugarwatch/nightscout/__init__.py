"""Nightscout data source — authenticated REST client and payload helpers."""

from sugarwatch.nightscout.client import NightscoutClient, hash_api_secret
from sugarwatch.nightscout.device_status import DeviceStatus
from sugarwatch.nightscout.exceptions import (
    AuthenticationRejectedError,
    EmptyResultError,
    FetchError,
    FetchErrorKind,
    FetchTimeoutError,
    HttpStatusError,
    MalformedPayloadError,
    NetworkUnavailableError,
)
from sugarwatch.nightscout.profile import Profile, current_basal, scheduled_basal

__all__ = [
    "AuthenticationRejectedError",
    "DeviceStatus",
    "EmptyResultError",
    "FetchError",
    "FetchErrorKind",
    "FetchTimeoutError",
    "HttpStatusError",
    "MalformedPayloadError",
    "NetworkUnavailableError",
    "NightscoutClient",
    "Profile",
    "current_basal",
    "hash_api_secret",
    "scheduled_basal",
]
