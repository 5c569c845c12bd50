from enum import Enum


class SlotConfigurationStatusEnum(str, Enum):
    draft = "draft"
    published = "published"


class ProductStatusEnum(str, Enum):
    active = "active"
    inactive = "inactive"
    draft = "draft"


class AssistantMessageRoleEnum(str, Enum):
    user = "user"
    assistant = "assistant"


class TrainingOutcomeEnum(str, Enum):
    pending = "pending"
    success = "success"
    failure = "failure"
