from __future__ import annotations

import logging

from ..errors import RegistrationError
from ..lib.appinst import STATUS_ALREADY_REGISTERED, STATUS_OK
from .base import InstallCtx

logger = logging.getLogger(__name__)


class RegisterStep:
    step_id = "40_register"

    def run(self, ctx: InstallCtx) -> None:
        status = ctx.registrar.register(ctx.title_id, str(ctx.layout.install_root) + "/")
        ctx.status = status
        if status == STATUS_OK:
            logger.info("  [REG] Installed NEW!")
        elif status == STATUS_ALREADY_REGISTERED:
            logger.info("  [REG] Restored.")
        else:
            raise RegistrationError(status)

    def rollback(self, ctx: InstallCtx) -> None:
        return None
