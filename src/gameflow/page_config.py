"""Per-type page configuration shapes and their defaults.

Page configuration is persisted as an untyped JSON blob, so nothing at the
storage boundary guarantees that a stored ``config`` matches its page type.
The helpers here therefore read configs leniently:

* missing fields fall back to defaults,
* unknown fields are preserved untouched when a config is parsed and dumped,
* unknown page types parse into :class:`UnknownPageConfig`, which keeps the
  raw mapping as-is.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Annotated, Any, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .page_types import PageType

MAX_REWARD_ITEMS = 3


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class LocationSettings(_ConfigModel):
    """Optional map marker shared by every page type."""

    enabled: bool = False
    latitude: float | None = None
    longitude: float | None = None
    radius: Annotated[float, Field(ge=0)] | None = None
    location_name: str | None = None
    instructions: str | None = None
    show_on_map: bool | None = None
    icon_type: str | None = None


class OnCompleteAction(_ConfigModel):
    """Variable, inventory or score mutation applied when a page completes."""

    type: str
    variable_name: str | None = None
    value: Any = None
    item_id: str | None = None
    points: int | None = None


class _PageConfigBase(_ConfigModel):
    """Cross-cutting reward and location fields available on any page."""

    reward_points: Annotated[int, Field(ge=0)] | None = None
    reward_items: Annotated[list[str], Field(max_length=MAX_REWARD_ITEMS)] | None = None
    location_settings: LocationSettings | None = None
    on_complete_actions: list[OnCompleteAction] | None = None


class FlowCondition(_ConfigModel):
    type: str
    variable_name: str | None = None
    variable_value: Any = None
    item_id: str | None = None
    score_threshold: int | None = None
    weight: float | None = None


class FlowRoute(_ConfigModel):
    id: str = ""
    label: str | None = None
    conditions: list[FlowCondition] = Field(default_factory=list)
    condition_logic: str = "and"
    next_page_id: str | None = None


class TextCardConfig(_PageConfigBase):
    title: str = ""
    content: str = ""
    background_image: str | None = None
    time_limit: int | None = None


class DialogueCharacter(_ConfigModel):
    name: str = ""
    avatar: str | None = None


class DialogueMessage(_ConfigModel):
    text: str = ""
    delay: int | None = None
    emotion: str | None = None


class DialogueConfig(_PageConfigBase):
    character: DialogueCharacter = Field(default_factory=DialogueCharacter)
    messages: list[DialogueMessage] = Field(default_factory=list)
    auto_advance: bool | None = None


class VideoConfig(_PageConfigBase):
    video_url: str = ""
    auto_play: bool | None = None
    skip_enabled: bool | None = None


class ButtonOption(_ConfigModel):
    text: str = ""
    next_page_id: str | None = None
    reward_points: int = Field(0, ge=0)
    items: list[str] | None = None


class ButtonConfig(_PageConfigBase):
    prompt: str | None = None
    buttons: list[ButtonOption] = Field(default_factory=list)
    time_limit: int | None = None
    default_choice: int | None = None
    randomize_order: bool | None = None


class TextVerifyConfig(_PageConfigBase):
    question: str = ""
    answers: list[str] = Field(default_factory=list)
    correct_answer: str | None = None
    case_sensitive: bool = False
    max_attempts: Annotated[int, Field(ge=1)] | None = None
    next_page_id: str | None = None


class ChoiceOption(_ConfigModel):
    text: str = ""
    correct: bool = False
    next_page_id: str | None = None


class ChoiceVerifyConfig(_PageConfigBase):
    question: str | None = None
    options: list[ChoiceOption] = Field(default_factory=list)
    multiple: bool = False


class Fragment(_ConfigModel):
    id: str
    label: str = ""
    value: str = ""
    order: int | None = None
    source_item_id: str | None = None


class ConditionalVerifyConfig(_PageConfigBase):
    title: str | None = None
    instruction: str | None = None
    fragment_type: str = "numbers"
    fragment_count: int = Field(0, ge=0)
    fragments: list[Fragment] = Field(default_factory=list)
    target_code: str | None = None
    verification_mode: str = "order_matters"
    success_next_page_id: str | None = None
    failure_next_page_id: str | None = None


class ShootingMissionConfig(_PageConfigBase):
    required_hits: Annotated[int, Field(ge=0)] | None = None
    time_limit: int = 60
    min_score: int | None = None
    target_score: int | None = None
    target_device_id: str | None = None


class PhotoMissionConfig(_PageConfigBase):
    instruction: str = ""
    ai_verify: bool | None = None
    target_keywords: list[str] | None = None


class GpsTarget(_ConfigModel):
    lat: float
    lng: float


class GpsMissionConfig(_PageConfigBase):
    target_location: GpsTarget | None = None
    radius: float = Field(50, ge=0)
    instruction: str | None = None


class QrScanConfig(_PageConfigBase):
    qr_code_id: str | None = None
    primary_code: str | None = None
    alternative_codes: list[str] | None = None
    validation_mode: str | None = None
    next_page_id: str | None = None


class TimeBombTask(_ConfigModel):
    type: str = "tap"
    question: str | None = None
    answer: str | None = None
    target_count: int | None = None


class TimeBombConfig(_PageConfigBase):
    title: str | None = None
    time_limit: int = Field(60, ge=1)
    tasks: list[TimeBombTask] = Field(default_factory=list)
    success_next_page_id: str | None = None
    failure_next_page_id: str | None = None


class LockConfig(_PageConfigBase):
    title: str | None = None
    lock_type: str = "number"
    combination: str = ""
    digits: Annotated[int, Field(ge=1)] | None = None
    max_attempts: Annotated[int, Field(ge=1)] | None = None
    next_page_id: str | None = None


class MotionChallengeConfig(_PageConfigBase):
    title: str | None = None
    challenge_type: str = "shake"
    target_value: float = 0
    time_limit: int | None = None
    next_page_id: str | None = None


class VoteOption(_ConfigModel):
    text: str = ""
    next_page_id: str | None = None


class VoteConfig(_PageConfigBase):
    title: str | None = None
    question: str = ""
    options: list[VoteOption] = Field(default_factory=list)
    show_results: bool = True
    anonymous_voting: bool = True
    min_votes: int | None = None


class FlowRouterConfig(_PageConfigBase):
    mode: str = "conditional"
    routes: list[FlowRoute] = Field(default_factory=list)
    default_next_page_id: str | None = None


@dataclass(frozen=True)
class UnknownPageConfig:
    """Opaque config for a page type this build does not recognise."""

    page_type: str
    raw: Mapping[str, Any] = field(default_factory=dict)

    def dump(self) -> dict[str, Any]:
        return copy.deepcopy(dict(self.raw))


KnownPageConfig = Union[
    TextCardConfig,
    DialogueConfig,
    VideoConfig,
    ButtonConfig,
    TextVerifyConfig,
    ChoiceVerifyConfig,
    ConditionalVerifyConfig,
    ShootingMissionConfig,
    PhotoMissionConfig,
    GpsMissionConfig,
    QrScanConfig,
    TimeBombConfig,
    LockConfig,
    MotionChallengeConfig,
    VoteConfig,
    FlowRouterConfig,
]
PageConfig = Union[KnownPageConfig, UnknownPageConfig]

CONFIG_MODELS: Mapping[str, type[_PageConfigBase]] = MappingProxyType(
    {
        PageType.TEXT_CARD.value: TextCardConfig,
        PageType.DIALOGUE.value: DialogueConfig,
        PageType.VIDEO.value: VideoConfig,
        PageType.BUTTON.value: ButtonConfig,
        PageType.TEXT_VERIFY.value: TextVerifyConfig,
        PageType.CHOICE_VERIFY.value: ChoiceVerifyConfig,
        PageType.CONDITIONAL_VERIFY.value: ConditionalVerifyConfig,
        PageType.SHOOTING_MISSION.value: ShootingMissionConfig,
        PageType.PHOTO_MISSION.value: PhotoMissionConfig,
        PageType.GPS_MISSION.value: GpsMissionConfig,
        PageType.QR_SCAN.value: QrScanConfig,
        PageType.TIME_BOMB.value: TimeBombConfig,
        PageType.LOCK.value: LockConfig,
        PageType.MOTION_CHALLENGE.value: MotionChallengeConfig,
        PageType.VOTE.value: VoteConfig,
        PageType.FLOW_ROUTER.value: FlowRouterConfig,
    }
)


class PageConfigError(ValueError):
    """Raised when a page config does not match the shape of its page type."""

    def __init__(self, page_type: str, errors: list[dict[str, Any]]) -> None:
        self.page_type = page_type
        self.errors = errors
        summary = "; ".join(
            "{}: {}".format(".".join(str(part) for part in error.get("loc", ())), error.get("msg"))
            for error in errors
        )
        super().__init__(f"Invalid config for page type '{page_type}': {summary}")


def default_config_for(page_type: str) -> dict[str, Any]:
    """Return the starting config for a newly created page of ``page_type``.

    A new mapping is built on every call. Unknown page types yield ``{}``.
    """

    if page_type == "text_card":
        return {"title": "New title", "content": "Enter the content here..."}
    if page_type == "dialogue":
        return {
            "character": {"name": "Character name"},
            "messages": [{"text": "Dialogue line..."}],
        }
    if page_type == "video":
        return {"videoUrl": ""}
    if page_type == "button":
        return {
            "prompt": "Pick an option",
            "buttons": [
                {"text": "Option 1", "nextPageId": None, "rewardPoints": 0},
                {"text": "Option 2", "nextPageId": None, "rewardPoints": 0},
            ],
        }
    if page_type == "text_verify":
        return {"question": "Question?", "answers": ["Answer"]}
    if page_type == "choice_verify":
        return {
            "question": "Question?",
            "options": [
                {"text": "Option A", "correct": True},
                {"text": "Option B", "correct": False},
            ],
        }
    if page_type == "conditional_verify":
        return {
            "title": "Fragment collection",
            "instruction": "Collect every fragment to assemble the code",
            "fragmentType": "numbers",
            "fragmentCount": 4,
            "fragments": [
                {"id": f"f{index}", "label": f"Fragment {index}/4", "value": str(index), "order": index}
                for index in range(1, 5)
            ],
            "targetCode": "1234",
            "verificationMode": "order_matters",
            "rewardPoints": 30,
        }
    if page_type == "shooting_mission":
        return {"requiredHits": 5, "timeLimit": 60}
    if page_type == "photo_mission":
        return {"instruction": "Take a photo of..."}
    if page_type == "gps_mission":
        return {
            "targetLocation": {"lat": 25.033, "lng": 121.565},
            "radius": 50,
            "instruction": "Head to the target location",
        }
    if page_type == "qr_scan":
        return {"qrCodeId": "QR-001"}
    if page_type == "time_bomb":
        return {
            "title": "Defuse the bomb",
            "timeLimit": 60,
            "tasks": [{"type": "tap", "question": "Tap as fast as you can!", "targetCount": 10}],
        }
    if page_type == "lock":
        return {
            "title": "Combination lock",
            "lockType": "number",
            "combination": "1234",
            "digits": 4,
            "maxAttempts": 5,
        }
    if page_type == "motion_challenge":
        return {
            "title": "Motion challenge",
            "challengeType": "shake",
            "targetValue": 20,
            "timeLimit": 30,
        }
    if page_type == "vote":
        return {
            "title": "Team vote",
            "question": "Choose your answer",
            "options": [{"text": "Option one"}, {"text": "Option two"}],
            "showResults": True,
            "anonymousVoting": True,
        }
    if page_type == "flow_router":
        return {"mode": "conditional", "routes": [], "defaultNextPageId": "_next"}
    return {}


def parse_page_config(page_type: str, config: Mapping[str, Any] | None) -> PageConfig:
    """Return a typed view of ``config`` for ``page_type``.

    Raises:
        PageConfigError: If a recognised page type carries fields of the
            wrong shape.
    """

    raw: Mapping[str, Any] = config if config is not None else {}
    if not isinstance(raw, Mapping):
        raise TypeError(f"config must be a mapping, got {type(raw)!r}")

    model = CONFIG_MODELS.get(page_type)
    if model is None:
        return UnknownPageConfig(page_type=page_type, raw=copy.deepcopy(dict(raw)))

    try:
        return model.model_validate(dict(raw))
    except ValidationError as exc:
        raise PageConfigError(page_type, exc.errors(include_url=False)) from exc


def dump_page_config(config: PageConfig) -> dict[str, Any]:
    """Serialise a parsed config back into its wire mapping.

    Only fields present in the source mapping are emitted, so a parse/dump
    cycle never adds defaults or drops unknown keys.
    """

    if isinstance(config, UnknownPageConfig):
        return config.dump()
    return config.model_dump(by_alias=True, exclude_unset=True)


def validate_page_config(page_type: str, config: Mapping[str, Any] | None) -> dict[str, Any]:
    """Check ``config`` against its page type and return it unchanged in content."""

    return dump_page_config(parse_page_config(page_type, config))


__all__ = [
    "ButtonConfig",
    "ButtonOption",
    "CONFIG_MODELS",
    "ConditionalVerifyConfig",
    "FlowCondition",
    "FlowRoute",
    "FlowRouterConfig",
    "LocationSettings",
    "MAX_REWARD_ITEMS",
    "OnCompleteAction",
    "PageConfig",
    "PageConfigError",
    "UnknownPageConfig",
    "default_config_for",
    "dump_page_config",
    "parse_page_config",
    "validate_page_config",
]
