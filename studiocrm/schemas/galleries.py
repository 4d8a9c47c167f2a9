from pydantic import BaseModel, Field


class GalleryCreateIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    slug: str | None = Field(default=None, max_length=200)
    description: str | None = None
    client_id: int | None = None
    is_public: bool = True
    password: str | None = Field(default=None, min_length=4, max_length=255)


class GalleryUpdateIn(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    cover_image: str | None = None
    client_id: int | None = None
    is_public: bool | None = None
    # "" removes the password
    password: str | None = Field(default=None, max_length=255)


class GalleryImageIn(BaseModel):
    filename: str = Field(min_length=1, max_length=300)
    url: str = Field(min_length=1, max_length=1000)
    title: str | None = Field(default=None, max_length=200)


class GalleryAccessIn(BaseModel):
    password: str | None = None
