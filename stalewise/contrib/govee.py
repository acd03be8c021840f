"""
Govee undocumented app API — the cache's main collaborator.

Session logins and catalog listings are slow, rate limited and sometimes
down, so every call that can be cached goes through CacheService:

    account-info        12h / 12h, TTL from server tokenExpireCycle
    community-login     1d / 12h, TTL from server expiredAt (max 1 day)
    iot-key             12h / 12h
    scenes-{sku}        1d / 7d, stale allowed
    one-click-shortcuts 1d / 7d, stale allowed

A 401 from an endpoint that used a cached token invalidates that token.

    service = C.CacheService(await C.create_sqlalchemy_store())
    client = GoveeSettings().api_client(service)
    match await client.login_account_cached():
        case Ok(login):
            devices = await client.get_device_list(login.token)
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

import httpx
from kungfu import Result, Ok, Error
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from stalewise._logging import get_logger
from stalewise.cache import (
    CacheError,
    CacheOptions,
    CacheService,
    Computed,
    HALF_DAY,
    ONE_DAY,
    ONE_WEEK,
    PydanticCodec,
    WithTtl,
)

log = get_logger(__name__)

APP_VERSION = "5.6.01"
TOPIC = "undoc-api"

ACCOUNT_LOGIN_URL = "https://app2.govee.com/account/rest/account/v1/login"
COMMUNITY_LOGIN_URL = "https://community-api.govee.com/os/v1/login"
IOT_KEY_URL = "https://app2.govee.com/app/v1/account/iot/key"
DEVICE_LIST_URL = "https://app2.govee.com/device/rest/devices/v1/list"
SCENES_URL = "https://app2.govee.com/appsku/v1/light-effect-libraries"
ONE_CLICK_URL = "https://app2.govee.com/bff-app/v1/exec-plat/home"

DYNAMIC_SCENE = "devices.capabilities.dynamic_scene"


def user_agent() -> str:
    return (
        f"GoveeHome/{APP_VERSION} (com.ihoment.GoVeeSensor; build:2; iOS 16.5.0) "
        "Alamofire/5.6.4"
    )


def ms_timestamp() -> str:
    return str(int(time.time() * 1000))


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(eq=False)
class GoveeApiError(Exception):
    """Non-success HTTP status or malformed body from the Govee API."""

    url: str
    status: int
    body: str

    def __str__(self) -> str:
        return f"{self.url}: HTTP {self.status}: {self.body[:200]}"


# ═══════════════════════════════════════════════════════════════════════════════
# Models
# ═══════════════════════════════════════════════════════════════════════════════


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


def _embedded_json(value: Any) -> Any:
    """Govee nests JSON documents as strings; parse them once."""
    if isinstance(value, str):
        return json.loads(value)
    return value


class LoginAccountResponse(_Model):
    a: str = Field(alias="A")
    b: str = Field(alias="B")
    account_id: int
    client: str
    is_savvy_user: bool = False
    refresh_token: str | None = None
    client_name: str | None = None
    push_token: str | None = None
    version_code: str | None = None
    version_name: str | None = None
    sys_version: str | None = None
    token: str
    token_expire_cycle: int
    topic: str


class IotKey(_Model):
    endpoint: str
    log: str
    p12: str
    p12_pass: str


class LightEffectEntry(_Model):
    scence_param_id: int
    scence_name: str = ""
    scence_param: str = ""
    scene_code: int = 0


class LightEffectScene(_Model):
    scene_id: int
    scene_name: str
    scene_code: int = 0
    light_effects: list[LightEffectEntry] = Field(default_factory=list)


class LightEffectCategory(_Model):
    category_id: int
    category_name: str
    scenes: list[LightEffectScene] = Field(default_factory=list)


class SceneOption(_Model):
    name: str
    value: dict[str, int]


class EnumParameters(_Model):
    data_type: str = "ENUM"
    options: list[SceneOption] = Field(default_factory=list)


class DeviceCapability(_Model):
    """Capability in the shape the public platform API reports it."""

    type: str
    instance: str
    parameters: EnumParameters


class OneClickIotRuleDevice(_Model):
    name: str
    device: str
    sku: str
    topic: str


class OneClickIotRuleEntry(_Model):
    iot_msg: Any = None

    @field_validator("iot_msg", mode="before")
    @classmethod
    def parse_iot_msg(cls, value: Any) -> Any:
        return _embedded_json(value)


class OneClickIotRule(_Model):
    device_obj: OneClickIotRuleDevice
    rule: list[OneClickIotRuleEntry] = Field(default_factory=list)


class OneClick(_Model):
    name: str
    iot_rules: list[OneClickIotRule] = Field(default_factory=list)


class OneClickComponent(_Model):
    component_id: int
    name: str
    one_clicks: list[OneClick] = Field(default_factory=list)


class DeviceEntry(_Model):
    device: str
    device_name: str
    sku: str
    group_id: int = 0


class GroupEntry(_Model):
    group_id: int
    group_name: str


class DevicesResponse(_Model):
    devices: list[DeviceEntry] = Field(default_factory=list)
    groups: list[GroupEntry] = Field(default_factory=list)
    message: str = ""
    status: int = 200


class ParsedOneClickEntry(_Model):
    topic: str
    device: str
    msgs: list[Any]


class ParsedOneClick(_Model):
    name: str
    entries: list[ParsedOneClickEntry]


# ═══════════════════════════════════════════════════════════════════════════════
# Client
# ═══════════════════════════════════════════════════════════════════════════════


class GoveeClient:
    """
    Undocumented Govee app API client.

    Cached methods return Result[T, CacheError]; a replayed failure
    (err.replayed) means no request was sent.
    """

    def __init__(
        self,
        email: str,
        password: str,
        service: CacheService,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.email = email
        self.password = password
        self.client_id = uuid.uuid5(uuid.NAMESPACE_DNS, email).hex
        self._service = service
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http:
            await self._http.aclose()

    def _app_headers(self, token: str | None = None) -> dict[str, str]:
        headers = {
            "appVersion": APP_VERSION,
            "clientId": self.client_id,
            "clientType": "1",
            "iotVersion": "0",
            "timestamp": ms_timestamp(),
            "User-Agent": user_agent(),
        }
        if token is not None:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _body(self, response: httpx.Response) -> dict[str, Any]:
        if not response.is_success:
            raise GoveeApiError(str(response.url), response.status_code, response.text)
        try:
            return response.json()
        except ValueError as e:
            raise GoveeApiError(str(response.url), response.status_code, response.text) from e

    # ─────────────────────────────────────────────────────────────────────────
    # Account login
    # ─────────────────────────────────────────────────────────────────────────

    async def _login_account(self) -> WithTtl[LoginAccountResponse]:
        response = await self._http.post(
            ACCOUNT_LOGIN_URL,
            json={"email": self.email, "password": self.password, "client": self.client_id},
            timeout=30.0,
        )
        body = await self._body(response)
        login = LoginAccountResponse.model_validate(body["client"])
        return Computed.with_ttl(login, timedelta(seconds=login.token_expire_cycle))

    async def login_account(self) -> LoginAccountResponse:
        """Fresh login, bypassing the cache. Raises on failure."""
        return (await self._login_account()).value

    async def login_account_cached(self) -> Result[LoginAccountResponse, CacheError]:
        opts = (
            CacheOptions(TOPIC, "account-info", soft_ttl=HALF_DAY, hard_ttl=HALF_DAY)
            .with_negative_ttl(seconds=10)
            .with_codec(PydanticCodec(LoginAccountResponse))
        )
        return _value(await self._service.get_or_compute(opts, self._login_account))

    async def invalidate_account_login(self) -> None:
        await self._service.invalidate(TOPIC, "account-info")

    # ─────────────────────────────────────────────────────────────────────────
    # Community login
    # ─────────────────────────────────────────────────────────────────────────

    async def _login_community(self) -> WithTtl[str]:
        response = await self._http.post(
            COMMUNITY_LOGIN_URL,
            json={"email": self.email, "password": self.password},
            timeout=60.0,
        )
        body = await self._body(response)
        data = body["data"]
        remaining_ms = int(data["expiredAt"]) - int(time.time() * 1000)
        ttl = min(timedelta(milliseconds=max(remaining_ms, 0)), ONE_DAY)
        return Computed.with_ttl(data["token"], ttl)

    async def login_community(self) -> Result[str, CacheError]:
        """Bearer token for community-api.govee.com."""
        opts = CacheOptions(
            TOPIC,
            "community-login",
            soft_ttl=ONE_DAY,
            hard_ttl=HALF_DAY,
        ).with_negative_ttl(seconds=10)
        return _value(await self._service.get_or_compute(opts, self._login_community))

    async def invalidate_community_login(self) -> None:
        await self._service.invalidate(TOPIC, "community-login")

    # ─────────────────────────────────────────────────────────────────────────
    # IoT key
    # ─────────────────────────────────────────────────────────────────────────

    async def get_iot_key(self, token: str) -> Result[IotKey, CacheError]:
        async def compute() -> IotKey:
            response = await self._http.get(
                IOT_KEY_URL,
                headers=self._app_headers(token),
                timeout=30.0,
            )
            body = await self._body(response)
            return IotKey.model_validate(body["data"])

        opts = (
            CacheOptions(TOPIC, "iot-key", soft_ttl=HALF_DAY, hard_ttl=HALF_DAY)
            .with_negative_ttl(seconds=10)
            .with_codec(PydanticCodec(IotKey))
        )
        return _value(await self._service.get_or_compute(opts, compute))

    # ─────────────────────────────────────────────────────────────────────────
    # Device list (uncached)
    # ─────────────────────────────────────────────────────────────────────────

    async def get_device_list(self, token: str) -> DevicesResponse:
        """
        List account devices. Raises on failure.

        A 401 means the cached account token is no good: evict it so the
        next login_account_cached() logs in again.
        """
        response = await self._http.post(
            DEVICE_LIST_URL,
            headers=self._app_headers(token),
            timeout=30.0,
        )
        if response.status_code == httpx.codes.UNAUTHORIZED:
            log.info("govee.unauthorized", url=DEVICE_LIST_URL)
            await self.invalidate_account_login()

        return DevicesResponse.model_validate(await self._body(response))

    # ─────────────────────────────────────────────────────────────────────────
    # Scenes / one-click shortcuts (stale allowed)
    # ─────────────────────────────────────────────────────────────────────────

    async def get_scenes_for_device(self, sku: str) -> Result[list[LightEffectCategory], CacheError]:
        async def compute() -> list[LightEffectCategory]:
            response = await self._http.get(
                SCENES_URL,
                params={"sku": sku},
                headers={"AppVersion": APP_VERSION, "User-Agent": user_agent()},
                timeout=10.0,
            )
            body = await self._body(response)
            return [LightEffectCategory.model_validate(c) for c in body["data"]["categories"]]

        opts = (
            CacheOptions(TOPIC, f"scenes-{sku}", soft_ttl=ONE_DAY, hard_ttl=ONE_WEEK)
            .with_negative_ttl(seconds=1)
            .with_allow_stale()
            .with_codec(PydanticCodec(list[LightEffectCategory]))
        )
        return _value(await self._service.get_or_compute(opts, compute))

    async def synthesize_platform_api_scene_list(
        self, sku: str
    ) -> Result[list[DeviceCapability], CacheError]:
        """
        Dynamic-scene capability built from the app scene catalog.

        The platform API omits some scenes for certain devices; this
        rebuilds the full option list. Scenes without a light effect
        have no paramId and are skipped.
        """
        match await self.get_scenes_for_device(sku):
            case Error(err):
                return Error(err)
            case Ok(catalog):
                pass

        options = [
            SceneOption(
                name=scene.scene_name,
                value={"paramId": scene.light_effects[0].scence_param_id, "id": scene.scene_id},
            )
            for category in catalog
            for scene in category.scenes
            if scene.light_effects
        ]
        return Ok(
            [
                DeviceCapability(
                    type=DYNAMIC_SCENE,
                    instance="lightScene",
                    parameters=EnumParameters(options=options),
                )
            ]
        )

    async def get_saved_one_click_shortcuts(
        self, community_token: str
    ) -> Result[list[OneClickComponent], CacheError]:
        async def compute() -> list[OneClickComponent]:
            response = await self._http.get(
                ONE_CLICK_URL,
                headers=self._app_headers(community_token),
                timeout=10.0,
            )
            if response.status_code == httpx.codes.UNAUTHORIZED:
                log.info("govee.unauthorized", url=ONE_CLICK_URL)
                await self.invalidate_community_login()

            body = await self._body(response)
            return [OneClickComponent.model_validate(c) for c in body["data"]["components"]]

        opts = (
            CacheOptions(TOPIC, "one-click-shortcuts", soft_ttl=ONE_DAY, hard_ttl=ONE_WEEK)
            .with_negative_ttl(seconds=1)
            .with_allow_stale()
            .with_codec(PydanticCodec(list[OneClickComponent]))
        )
        return _value(await self._service.get_or_compute(opts, compute))

    async def parse_one_clicks(self) -> Result[list[ParsedOneClick], CacheError]:
        """Flatten saved one-click shortcuts into per-device IoT messages."""
        match await self.login_community():
            case Error(err):
                return Error(err)
            case Ok(token):
                pass

        match await self.get_saved_one_click_shortcuts(token):
            case Error(err):
                return Error(err)
            case Ok(groups):
                pass

        parsed: list[ParsedOneClick] = []
        for group in groups:
            for oc in group.one_clicks:
                if not oc.iot_rules:
                    continue
                entries = [
                    ParsedOneClickEntry(
                        topic=rule.device_obj.topic,
                        device=rule.device_obj.device,
                        msgs=[r.iot_msg for r in rule.rule],
                    )
                    for rule in oc.iot_rules
                ]
                parsed.append(ParsedOneClick(name=f"One-Click: {group.name}: {oc.name}", entries=entries))
        return Ok(parsed)


def _value[T](result: Result[Any, CacheError]) -> Result[T, CacheError]:
    match result:
        case Ok(hit):
            return Ok(hit.value)
        case Error(err):
            return Error(err)


# ═══════════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════════


class GoveeSettings(BaseSettings):
    """Credentials from GOVEE_EMAIL / GOVEE_PASSWORD (or .env)."""

    model_config = SettingsConfigDict(
        env_prefix="GOVEE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    email: str | None = None
    password: str | None = None

    def api_client(
        self,
        service: CacheService,
        http: httpx.AsyncClient | None = None,
    ) -> GoveeClient:
        if not self.email:
            raise ValueError(
                "Please specify the govee account email by setting $GOVEE_EMAIL"
            )
        if not self.password:
            raise ValueError(
                "Please specify the govee account password by setting $GOVEE_PASSWORD"
            )
        return GoveeClient(self.email, self.password, service, http)


__all__ = (
    "APP_VERSION",
    "TOPIC",
    "DYNAMIC_SCENE",
    "GoveeApiError",
    "LoginAccountResponse",
    "IotKey",
    "LightEffectEntry",
    "LightEffectScene",
    "LightEffectCategory",
    "SceneOption",
    "EnumParameters",
    "DeviceCapability",
    "OneClickComponent",
    "OneClick",
    "OneClickIotRule",
    "OneClickIotRuleEntry",
    "OneClickIotRuleDevice",
    "DeviceEntry",
    "GroupEntry",
    "DevicesResponse",
    "ParsedOneClick",
    "ParsedOneClickEntry",
    "GoveeClient",
    "GoveeSettings",
)
