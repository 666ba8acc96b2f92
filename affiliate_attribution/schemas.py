"""Pydantic schemas for attribution API request/response payloads.

Field names match the wire format (camelCase) of api.insertaffiliate.com.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AffiliateLookupRequest(BaseModel):
    """Payload for POST /V1/checkAffiliateExists."""

    companyId: str = Field(description="Insert Affiliate company code")
    affiliateCode: str = Field(description="Uppercased short code entered by the user")


class AffiliateDetails(BaseModel):
    """Affiliate record returned by the lookup endpoint."""

    model_config = ConfigDict(extra="ignore")

    affiliateName: str = ""
    affiliateShortCode: str = ""
    deeplinkurl: Optional[str] = None


class AffiliateExistsResponse(BaseModel):
    """Response of POST /V1/checkAffiliateExists."""

    model_config = ConfigDict(extra="ignore")

    exists: bool = False
    affiliate: Optional[AffiliateDetails] = None


class TrackEventRequest(BaseModel):
    """Payload for POST /v1/trackEvent."""

    eventName: str = Field(description="Host-defined event name")
    deepLinkParam: str = Field(description="Current attribution identifier")
    companyId: str


class ExpectedTransactionRequest(BaseModel):
    """Payload for POST /v1/api/app-store-webhook/create-expected-transaction."""

    companyId: str
    affiliateIdentifier: str
    appAccountToken: str = Field(description="UUID later echoed back by App Store webhooks")
