from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field


class OAuthCallbackPayload(BaseModel):
    """
    Payload forwarded by the frontend after Avito redirects back with ?code=&state=.
    """

    code: str = Field(..., min_length=1, description="Authorization code from Avito")
    state: str = Field(..., min_length=1, description="base64 JSON with property_id and timestamp (ms)")
    redirect_uri: Optional[str] = Field(None, description="Redirect URI used to obtain the code")


class IntegrationUpdatePayload(BaseModel):
    """
    Listing settings of an integration. All fields are optional.
    """

    avito_item_id: Optional[str] = Field(
        None, pattern=r"^\d{10,12}$", description="Avito listing id (10-12 digits)"
    )
    markup_type: Optional[Literal["percent", "fixed"]] = Field(
        None, description="How markup_value is applied to local prices"
    )
    markup_value: Optional[Decimal] = Field(None, description="Markup percent or flat amount")


class ValidateItemPayload(BaseModel):
    avito_item_id: str = Field(..., pattern=r"^\d{10,12}$", description="Avito listing id to check")
