from pydantic import BaseModel, Field


class UserOut(BaseModel):
    id: int
    phone: str
    name: str | None = None

    class Config:
        from_attributes = True


class UserProfileOut(BaseModel):
    id: int
    name: str | None = None
    bio: str | None = None
    avatar_url: str | None = None
    country: str | None = None

    class Config:
        from_attributes = True


class UserUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    bio: str | None = Field(default=None, max_length=500)
    avatar_url: str | None = Field(default=None, max_length=2048)
    country: str | None = Field(default=None, max_length=64)
