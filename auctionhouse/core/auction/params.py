"""
Start-auction parameters.

Callers send camelCase JSON (`startPrice`, `minIncrement`, `durationMinutes`,
`inviteeIds`, optional `startAt`). Absent or empty fields are reported together
as MissingFields; present-but-invalid amounts raise InvalidAmount.
"""

from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError

from auctionhouse.core.errors import InvalidAmount, MissingFields
from auctionhouse.utils.validation import validate_amount, validate_invitees

REQUIRED_FIELDS = ("startPrice", "minIncrement", "durationMinutes", "inviteeIds")


class StartAuctionParams(BaseModel):
    """Body of a start-auction request."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    # Strict so "100" or true are rejected rather than coerced
    start_price: Optional[StrictInt] = Field(default=None, alias="startPrice")
    min_increment: Optional[StrictInt] = Field(default=None, alias="minIncrement")
    duration_minutes: Optional[StrictInt] = Field(default=None, alias="durationMinutes")
    invitee_ids: Optional[List[str]] = Field(default=None, alias="inviteeIds")
    # Deferred start; omitted means the auction opens immediately
    start_at: Optional[float] = Field(default=None, alias="startAt", allow_inf_nan=False)

    def missing_fields(self) -> List[str]:
        missing = []
        if self.start_price is None:
            missing.append("startPrice")
        if self.min_increment is None:
            missing.append("minIncrement")
        if self.duration_minutes is None:
            missing.append("durationMinutes")
        if not self.invitee_ids:
            missing.append("inviteeIds")
        return missing


def parse_start_params(
    raw: Union[StartAuctionParams, Mapping[str, Any], None],
    max_duration_minutes: Optional[int] = None,
    max_invitees: Optional[int] = None,
) -> StartAuctionParams:
    """
    Validate start-auction parameters.

    Raises:
        MissingFields: a required field is absent or empty
        InvalidAmount: an amount or duration is malformed or not positive
    """
    if isinstance(raw, StartAuctionParams):
        params = raw
    else:
        try:
            params = StartAuctionParams.model_validate(dict(raw or {}))
        except ValidationError as e:
            bad = [str(err["loc"][0]) for err in e.errors() if err.get("loc")]
            if "inviteeIds" in bad:
                raise MissingFields(["inviteeIds"]) from e
            field = bad[0] if bad else "amount"
            if field == "startAt":
                raise InvalidAmount("startAt must be a finite timestamp") from e
            raise InvalidAmount(f"{field} must be a positive integer") from e

    missing = params.missing_fields()
    if missing:
        raise MissingFields(missing)

    for name, value in (
        ("startPrice", params.start_price),
        ("minIncrement", params.min_increment),
        ("durationMinutes", params.duration_minutes),
    ):
        valid, err = validate_amount(value, name)
        if not valid:
            raise InvalidAmount(err)

    if max_duration_minutes is not None and params.duration_minutes > max_duration_minutes:
        raise InvalidAmount(f"durationMinutes must be <= {max_duration_minutes}")

    if max_invitees is not None and len(set(params.invitee_ids)) > max_invitees:
        raise InvalidAmount(f"inviteeIds must hold at most {max_invitees} users")

    valid, err = validate_invitees(params.invitee_ids, max_length=None)
    if not valid:
        raise MissingFields(["inviteeIds"])

    return params
