from .stage_05_workspace import WorkspaceStage
from .stage_10_partition import PartitionStage
from .stage_20_format import FormatStage
from .stage_30_bootstrap_download import BootstrapDownloadStage
from .stage_40_populate_chroot import PopulateChrootStage
from .stage_50_mount_target import MountTargetStage
from .stage_60_configure import ConfigureStage
from .stage_90_teardown import TeardownStage

__all__ = [
    "WorkspaceStage",
    "PartitionStage",
    "FormatStage",
    "BootstrapDownloadStage",
    "PopulateChrootStage",
    "MountTargetStage",
    "ConfigureStage",
    "TeardownStage",
]
