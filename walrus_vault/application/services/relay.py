"""Upload relay state and tip configuration."""

from walrus_vault.commons.infrastructure.walrus import RelayTipConfig
from walrus_vault.commons.settings.models import DEFAULT_RELAY_TIP_MAX, RelaySettings
from walrus_vault.commons.telemetry import get_logger

logger = get_logger(__name__)


def build_tip_config(settings: RelaySettings) -> RelayTipConfig:
    """Translate relay settings into the tip offered with each write.

    Incomplete ``const`` or ``linear`` settings fall back to a capped tip so
    a typo in the environment never blocks uploads.
    """
    address = (settings.tip_address or "").strip() or None

    if settings.tip_kind == "const":
        if address and settings.tip_amount is not None:
            return RelayTipConfig(
                kind="const", address=address, amount=settings.tip_amount
            )
        logger.warning(
            "Invalid const relay tip configuration, falling back to max tip",
            extra={
                "has_address": address is not None,
                "has_amount": settings.tip_amount is not None,
            },
        )
    elif settings.tip_kind == "linear":
        complete = settings.tip_base is not None and settings.tip_per_kib is not None
        if address and complete:
            return RelayTipConfig(
                kind="linear",
                address=address,
                base=settings.tip_base,
                per_encoded_kib=settings.tip_per_kib,
            )
        logger.warning(
            "Invalid linear relay tip configuration, falling back to max tip",
            extra={
                "has_address": address is not None,
                "has_base": settings.tip_base is not None,
                "has_per_kib": settings.tip_per_kib is not None,
            },
        )

    if settings.tip_max is None:
        return RelayTipConfig(kind="max", max_tip=DEFAULT_RELAY_TIP_MAX)
    return RelayTipConfig(kind="max", max_tip=settings.tip_max)


class RelayManager:
    """Tracks whether the upload relay should still be used.

    The relay only speeds writes up; once it faults, writes go straight to
    the publisher until a success or an explicit reset clears the flag.
    """

    def __init__(self, available: bool = True) -> None:
        """Initialize the manager.

        Args:
            available: Whether a relay is configured at all.
        """
        self.available = available
        self.relay_degraded = False

    def should_use_relay(self) -> bool:
        return self.available and not self.relay_degraded

    def report_fault(self) -> None:
        if not self.relay_degraded:
            logger.warning("Upload relay marked degraded; using direct writes")
        self.relay_degraded = True

    def report_success(self) -> None:
        self._clear("success")

    def reset(self) -> None:
        self._clear("reset")

    def _clear(self, reason: str) -> None:
        if self.relay_degraded:
            logger.info("Upload relay flag cleared", extra={"reason": reason})
        self.relay_degraded = False
