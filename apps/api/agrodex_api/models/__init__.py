"""Database models - import all models here for metadata discovery."""

from agrodex_api.models.batch import Batch
from agrodex_api.models.token import NftMetadata, Token
from agrodex_api.models.verification import Verification

__all__ = [
    "Batch",
    "Token",
    "NftMetadata",
    "Verification",
]
