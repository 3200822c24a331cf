# uploadgate/schemas/uploads_multipart.py
# Wire-format volgt de Uppy AwsS3Multipart plugin (camelCase + S3 PascalCase voor parts).
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class MPUCreateIn(BaseModel):
    filename: str = Field(min_length=1, max_length=1024)
    content_type: Optional[str] = Field(
        default=None, max_length=255, validation_alias=AliasChoices("type", "contentType", "content_type")
    )
    metadata: Optional[Dict[str, Any]] = None


class MPUCreateOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    upload_id: str = Field(alias="uploadId")


class MPUPartOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    part_number: int = Field(alias="PartNumber")
    size: int = Field(alias="Size")
    etag: str = Field(alias="ETag")
    last_modified: Optional[datetime] = Field(default=None, alias="LastModified")


class MPUSignPartOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    expires_in: int = Field(alias="expiresIn")


class MPUBatchSignOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    presigned_urls: Dict[str, str] = Field(alias="presignedUrls")
    errors: Dict[str, str] = Field(default_factory=dict)


class MPUCompletePartIn(BaseModel):
    part_number: int = Field(ge=1, validation_alias=AliasChoices("PartNumber", "partNumber", "part_number"))
    etag: str = Field(min_length=1, validation_alias=AliasChoices("ETag", "eTag", "etag"))


class MPUCompleteIn(BaseModel):
    parts: List[MPUCompletePartIn] = Field(min_length=1)


class MPUCompleteOut(BaseModel):
    location: str
