"""Delegation models — backend descriptors, quotes and signature options.

Wire names are camelCase (what relayers speak); Python attributes are
snake_case.  Every model accepts either form on input.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BackendDescriptor(BaseModel):
    """One relayer endpoint and the functions it supports."""

    model_config = ConfigDict(frozen=True, extra="allow")

    url: str = Field(..., min_length=1)
    # ABI-style entries; constructor and fallback fragments carry no name
    functions: list[Any] = Field(..., min_length=1)

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def supports(self, function_name: str) -> bool:
        """True if any advertised function is named *function_name*."""
        return any(
            isinstance(f, Mapping) and f.get("name") == function_name
            for f in self.functions
        )

    @property
    def request_url(self) -> str:
        return f"{self.url}/request"


class QuoteRequestParams(BaseModel):
    """Snapshot of the store taken when a quote round starts."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    contract_address: str = Field(..., alias="contractAddress")
    signer: Optional[str] = None
    function_name: str = Field(..., alias="functionName")
    function_arguments: list[Any] = Field(default_factory=list, alias="functionArguments")

    def to_wire(self) -> dict[str, Any]:
        """JSON body for ``POST {backend}/request``."""
        return self.model_dump(by_alias=True, mode="json")


class SignatureOption(BaseModel):
    """One proposed way to authorize a delegation request."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    standard: str = Field(..., min_length=1)
    data_to_sign: Any = Field(default=None, alias="dataToSign")


class DelegationRequest(BaseModel):
    """A backend's quote: fee plus the signature standards it accepts.

    ``meta`` is filled with the originating descriptor once the quote is
    approved.  Instances are frozen; approval produces a new object.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    id: Union[str, int]
    fee: Decimal
    signature_options: list[SignatureOption] = Field(
        ..., min_length=1, alias="signatureOptions",
    )
    meta: Optional[BackendDescriptor] = None

    @field_validator("id")
    @classmethod
    def id_not_empty(cls, v: Union[str, int]) -> Union[str, int]:
        if not v:
            raise ValueError("request id must be non-empty")
        return v

    @field_validator("fee", mode="before")
    @classmethod
    def fee_is_number(cls, v: Any) -> Any:
        # bool is an int subclass; a fee of True is not a number
        if isinstance(v, bool) or v is None:
            raise ValueError("fee must be numeric")
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @property
    def standards(self) -> list[str]:
        """Offered standards in the order the backend listed them."""
        return [o.standard for o in self.signature_options]

    def approved_from(self, descriptor: BackendDescriptor) -> DelegationRequest:
        """Return a copy tagged with the descriptor it was quoted by."""
        return self.model_copy(update={"meta": descriptor})


class DelegationSignature(BaseModel):
    """Signature produced for an approved request."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    request_id: Union[str, int] = Field(..., alias="requestId")
    standard: str
    signature: str = Field(..., min_length=1)
