"""
Creation parameters for an auction.

Validated with pydantic; any violation is re-raised as ConfigurationError
so callers only ever see auction errors.
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from escrow_auction.core.errors import ConfigurationError
from escrow_auction.utils.validation import (
    IDENTITY_PATTERN,
    MAX_AMOUNT,
    MAX_IDENTITY_LENGTH,
    MAX_LOT_NAME_LENGTH,
    MAX_TIMESTAMP,
)


class AuctionParams(BaseModel):
    """Immutable description of the auction being created."""

    model_config = ConfigDict(frozen=True, strict=True)

    lot_name: str = Field(min_length=1, max_length=MAX_LOT_NAME_LENGTH)
    start_price: int = Field(ge=0, le=MAX_AMOUNT)
    start_time: int = Field(ge=0, le=MAX_TIMESTAMP)
    end_time: int = Field(ge=0, le=MAX_TIMESTAMP)
    organizer: str = Field(
        min_length=1, max_length=MAX_IDENTITY_LENGTH, pattern=IDENTITY_PATTERN
    )

    @model_validator(mode="after")
    def _check_window(self) -> "AuctionParams":
        if not self.lot_name.strip():
            raise ValueError("lot_name must not be blank")
        if self.start_time >= self.end_time:
            raise ValueError(
                f"start_time ({self.start_time}) must be before end_time ({self.end_time})"
            )
        return self


def build_params(
    lot_name,
    start_price,
    start_time,
    end_time,
    organizer,
    now: int,
) -> AuctionParams:
    """
    Validate creation inputs against the current time.

    Raises:
        ConfigurationError: on any invalid field, an inverted window, or a
            window that starts in the past
    """
    try:
        params = AuctionParams(
            lot_name=lot_name,
            start_price=start_price,
            start_time=start_time,
            end_time=end_time,
            organizer=organizer,
        )
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'params'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(problems) from e

    if params.start_time < now:
        raise ConfigurationError(
            f"start_time ({params.start_time}) is in the past (now={now})"
        )

    return params
