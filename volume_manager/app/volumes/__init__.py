"""Volume domain package: models, filters, persistence and use cases."""

from .filters import STANDARD_VOLUME_FILTER, VolumeFilter, parse_volume_filter
from .models import ZERO_UUID, AccessMode, ProvisioningState, Volume, VolumeDraft, is_zero_tariff

__all__ = [
    "AccessMode",
    "ProvisioningState",
    "STANDARD_VOLUME_FILTER",
    "Volume",
    "VolumeDraft",
    "VolumeFilter",
    "ZERO_UUID",
    "is_zero_tariff",
    "parse_volume_filter",
]
