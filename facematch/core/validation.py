"""
Input validation for enrollment writes.
"""

import math
from typing import List

from pydantic import BaseModel, ConfigDict, field_validator


class EnrollmentRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    identity_id: str
    name: str
    embedding: List[float]

    @field_validator('identity_id')
    @classmethod
    def identity_id_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('identity_id cannot be empty')
        return v

    @field_validator('name')
    @classmethod
    def name_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('name cannot be empty')
        return v

    @field_validator('embedding')
    @classmethod
    def embedding_must_be_finite(cls, v):
        if not v:
            raise ValueError('embedding cannot be empty')
        if not all(math.isfinite(x) for x in v):
            raise ValueError('embedding values must be finite')
        return v
