"""
rtail: last-N-lines extraction and follow mode for arbitrarily large text files.
"""

from .extractor import TailExtractor, tail
from .follow_engine import FollowEngine, FollowState, follow
from .rotation import FileIdentity, RotationStatus, detect
from .tail_common import (
    LineDecodeError,
    RotationRecoveryPending,
    RotationRetriesExhausted,
    TailError,
    TailFileNotFoundError,
    TailIOError,
    TailPermissionError,
    get_config,
)
from .version import __version__
