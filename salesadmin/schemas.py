from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Type, TypeVar, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    Field,
    StringConstraints,
    TypeAdapter,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from .config import MAX_LINK_COUNT, MIN_PASSWORD_LENGTH
from .errors import FormValidationError, error_message, format_path
from .forms import blank_to_none, is_checked
from .models import (
    DEFAULT_RELEASE_STATE,
    AppType,
    EventVisibility,
    ParticipationStatus,
    PlatformReleaseState,
    PlatformType,
    UrlType,
    UserRole,
)
from .participation import ParticipationFilter

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
OptionalText = Annotated[Optional[str], BeforeValidator(blank_to_none)]
OptionalId = Annotated[Optional[int], BeforeValidator(blank_to_none)]
Checkbox = Annotated[bool, BeforeValidator(is_checked)]
Email = Annotated[str, StringConstraints(strip_whitespace=True, pattern=r".+@.+\..+")]

ModelT = TypeVar("ModelT", bound=BaseModel)


def validate_form(model: Type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise FormValidationError.from_pydantic(exc) from exc


def parse_intent(adapter: TypeAdapter, data: dict):
    """Validate a payload against a union discriminated by its ``intent`` field."""
    try:
        return adapter.validate_python(data)
    except ValidationError as exc:
        tag = data.get("intent")
        errors = {}
        for error in exc.errors():
            loc = error["loc"]
            if loc and loc[0] == tag:
                loc = loc[1:]
            errors.setdefault(format_path(loc), error_message(error))
        raise FormValidationError(errors) from exc


class RemoveIntent(BaseModel):
    intent: Literal["remove"]


# ---------- auth ----------

class LoginForm(BaseModel):
    email: Email
    password: str = Field(min_length=1)
    redirect_to: OptionalText = None


# ---------- events ----------

class EventForm(BaseModel):
    name: RequiredText
    running_from: datetime
    running_to: datetime
    visibility: EventVisibility

    @field_validator("running_to")
    @classmethod
    def _not_before_start(cls, value: datetime, info: ValidationInfo) -> datetime:
        running_from = info.data.get("running_from")
        if running_from is not None and value < running_from:
            raise ValueError("Must be after running from")
        return value


class EventSaveIntent(EventForm):
    intent: Literal["save"]


EventEditAction = TypeAdapter(
    Annotated[Union[EventSaveIntent, RemoveIntent], Field(discriminator="intent")]
)


class CoordinatorForm(BaseModel):
    user_id: int


class SavePlatformIntent(BaseModel):
    intent: Literal["save-platform"]
    event_app_platform_id: int
    status: ParticipationStatus
    comment: OptionalText = None


class AddPlatformIntent(BaseModel):
    intent: Literal["add-platform"]
    app_platform_id: int
    status: ParticipationStatus
    comment: OptionalText = None


class DeletePlatformIntent(BaseModel):
    intent: Literal["delete-platform"]
    event_app_platform_id: int


EventAppsAction = TypeAdapter(
    Annotated[
        Union[SavePlatformIntent, AddPlatformIntent, DeletePlatformIntent],
        Field(discriminator="intent"),
    ]
)


# ---------- links ----------

class LinkForm(BaseModel):
    url: OptionalText = None
    title: OptionalText = None
    type: Annotated[Optional[UrlType], BeforeValidator(blank_to_none)] = None
    comment: OptionalText = None

    @field_validator("title")
    @classmethod
    def _title_for_url(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if info.data.get("url") and not value:
            raise ValueError("A link with a URL needs a title")
        return value

    @property
    def is_filled(self) -> bool:
        return bool(self.url and self.title)


Links = Annotated[List[LinkForm], Field(default_factory=list, max_length=MAX_LINK_COUNT)]


# ---------- platforms ----------

class PlatformForm(BaseModel):
    name: RequiredText
    type: PlatformType = PlatformType.Generic
    url: OptionalText = None
    comment: OptionalText = None


class PlatformSaveIntent(PlatformForm):
    intent: Literal["save"]


PlatformEditAction = TypeAdapter(
    Annotated[Union[PlatformSaveIntent, RemoveIntent], Field(discriminator="intent")]
)


# ---------- apps ----------

class AppPlatformForm(BaseModel):
    platform_id: int
    release_state: PlatformReleaseState = DEFAULT_RELEASE_STATE
    is_early_access: Checkbox = False
    is_free_to_play: Checkbox = False
    comment: OptionalText = None
    links: Links


class AppPlatformChoice(AppPlatformForm):
    """One platform row of the "new app" form; only checked rows are stored."""

    checked: Checkbox = False

    @model_validator(mode="before")
    @classmethod
    def _ignore_unchecked(cls, data: Any) -> Any:
        if isinstance(data, dict) and not is_checked(data.get("checked")):
            data = {**data, "links": []}
        return data


class AppDetailsForm(BaseModel):
    name: RequiredText
    type: AppType
    studio_id: int
    comment: OptionalText = None


class AppForm(AppDetailsForm):
    platforms: List[AppPlatformChoice] = Field(default_factory=list)

    @property
    def checked_platforms(self) -> List[AppPlatformChoice]:
        return [platform for platform in self.platforms if platform.checked]


class AppSaveIntent(AppDetailsForm):
    intent: Literal["save"]


AppEditAction = TypeAdapter(
    Annotated[Union[AppSaveIntent, RemoveIntent], Field(discriminator="intent")]
)


# ---------- studios ----------

class StudioForm(BaseModel):
    name: RequiredText
    comment: OptionalText = None
    links: Links


class StudioSaveIntent(StudioForm):
    intent: Literal["save"]
    main_contact_id: OptionalId = None


StudioEditAction = TypeAdapter(
    Annotated[Union[StudioSaveIntent, RemoveIntent], Field(discriminator="intent")]
)


class MemberForm(BaseModel):
    user_id: int
    position: OptionalText = None
    comment: OptionalText = None
    set_as_main_contact: Checkbox = False


# ---------- users ----------

class UserForm(BaseModel):
    email: Email
    name: RequiredText
    role: UserRole
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)
    confirm_password: str

    @field_validator("confirm_password")
    @classmethod
    def _passwords_match(cls, value: str, info: ValidationInfo) -> str:
        if "password" in info.data and value != info.data["password"]:
            raise ValueError("Password doesn't match")
        return value


class UserSaveIntent(BaseModel):
    intent: Literal["save"]
    email: Email
    name: RequiredText
    role: UserRole
    password: Annotated[
        Optional[Annotated[str, StringConstraints(min_length=MIN_PASSWORD_LENGTH)]],
        BeforeValidator(blank_to_none),
    ] = None
    confirm_password: OptionalText = None

    @field_validator("confirm_password")
    @classmethod
    def _passwords_match(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        password = info.data.get("password")
        if password is not None and value != password:
            raise ValueError("Password doesn't match")
        return value


UserEditAction = TypeAdapter(
    Annotated[Union[UserSaveIntent, RemoveIntent], Field(discriminator="intent")]
)


# ---------- event apps filters ----------

class FilterFacets(BaseModel):
    platform: Optional[List[int]] = None
    studio: Optional[List[int]] = None
    status: Optional[List[ParticipationStatus]] = None
    type: Optional[List[AppType]] = None


class EventAppsQuery(BaseModel):
    edit_app_id: OptionalId = None
    filters: Optional[FilterFacets] = None

    def to_filter(self) -> ParticipationFilter:
        if self.filters is None:
            return ParticipationFilter()
        return ParticipationFilter(
            **{
                facet: frozenset(values) if values is not None else None
                for facet, values in self.filters.model_dump().items()
            }
        )
