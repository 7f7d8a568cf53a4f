"""
Claim Model - A checkable factual assertion extracted from generated code

Claims are produced by the claim extractor and are immutable once created.
They belong to the request that produced them.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ClaimType(str, Enum):
    """Kinds of assertion a piece of content can make"""
    IMPORT = "import"
    FUNCTION_CALL = "function_call"
    TYPE_REFERENCE = "type_reference"
    API_ENDPOINT = "api_endpoint"
    ENV_VARIABLE = "env_variable"
    FILE_REFERENCE = "file_reference"
    PACKAGE_DEPENDENCY = "package_dependency"


class ClaimLocation(BaseModel):
    """Position of a claim inside the content it was extracted from"""

    model_config = ConfigDict(frozen=True)

    line: int = Field(..., ge=1)
    column: int = Field(..., ge=1)
    length: int = Field(default=0, ge=0)


class Claim(BaseModel):
    """
    A verifiable assertion embedded in AI-generated content.

    Examples: "this imports lodash", "this hits /api/users/:id",
    "this reads process.env.DATABASE_URL".
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    id: str = Field(..., min_length=1, description="Stable claim identifier")
    type: ClaimType = Field(..., description="What kind of assertion this is")
    value: str = Field(..., description="The asserted symbol, path or name")
    location: Optional[ClaimLocation] = Field(
        default=None,
        description="Where in the content the claim was found"
    )
    raw_confidence: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Extractor's own confidence that this is a real claim"
    )
    context: str = Field(
        default="",
        description="Surrounding snippet of the content"
    )
