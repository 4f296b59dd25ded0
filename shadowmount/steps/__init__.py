from .base import InstallCtx, InstallStep
from .step_10_mount import MountStep
from .step_20_copy_assets import CopyAssetsStep
from .step_30_write_link import WriteLinkStep
from .step_40_register import RegisterStep

__all__ = [
    "InstallCtx",
    "InstallStep",
    "MountStep",
    "CopyAssetsStep",
    "WriteLinkStep",
    "RegisterStep",
]
