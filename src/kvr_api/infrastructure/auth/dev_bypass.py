# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Developer authentication bypass.

When enabled, credential-less requests are treated as a fixed developer
identity. The object can only be constructed outside production, and the
composition root only builds it when ``DEV_AUTH_BYPASS`` is set, so the
regular authentication path carries no bypass branches of its own.
"""

from __future__ import annotations

from kvr_api.config.features.auth import DevBypassSettings
from kvr_api.config.settings import Environment
from kvr_api.domain.entities.principal import Principal
from kvr_api.domain.enums.auth import AuthSource, OrgRole
from kvr_api.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)


class DevBypass:
    """Produce the developer principal.

    Raises:
        RuntimeError: If constructed for the production environment.
    """

    def __init__(self, settings: DevBypassSettings, environment: Environment) -> None:
        if environment is Environment.PRODUCTION:
            raise RuntimeError("Developer auth bypass cannot run in production")
        self._settings = settings
        self._warned = False

    def principal(self, requested_org_id: str | None = None) -> Principal:
        if not self._warned:
            logger.warning(
                "auth.dev_bypass_active",
                extra={
                    "extra": {"user_id": self._settings.user_id, "role": self._settings.role}
                },
            )
            self._warned = True

        org_id = requested_org_id or self._settings.org_id
        return Principal(
            user_id=self._settings.user_id,
            email=self._settings.email,
            display_name="Dev User",
            roles=(self._settings.role,),
            permissions=("*",),
            auth_source=AuthSource.DEV_BYPASS,
            org_id=org_id,
            org_ids=(org_id,) if org_id else (),
            org_role=OrgRole.OWNER.value,
        )
