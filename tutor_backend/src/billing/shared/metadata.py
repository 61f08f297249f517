"""
Stripe Metadata Codec

Family subscription state that Stripe must carry between requests lives in
string-valued metadata on three objects:

- the subscription: ``parentId``, ``childrenIds`` (JSON array), ``childrenCount``
- the schedule: ``parentId``, ``pendingAction``, ``removedChildrenIds``
- the schedule's future phase: ``parentId``, ``childrenCount``,
  ``removedChildrenIds``, ``action`` and optionally ``childrenIds``

Every bag written here also carries ``metadataVersion``. Payloads are typed
with pydantic and decoded strictly: a wrong type, an unknown version or an
unknown ``pendingAction`` tag is rejected. Rejected input never raises to the
caller; it is logged at error level and decoded as "no state" (empty child
list, no pending action). Bags written before versioning (no
``metadataVersion`` key) are read as version 1.
"""

import json
import logging
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, StrictStr, TypeAdapter, ValidationError, field_validator

logger = logging.getLogger(__name__)

METADATA_VERSION = "1"

# Metadata keys
VERSION_KEY = "metadataVersion"
PARENT_ID_KEY = "parentId"
CHILDREN_IDS_KEY = "childrenIds"
CHILDREN_COUNT_KEY = "childrenCount"
PENDING_ACTION_KEY = "pendingAction"
REMOVED_CHILDREN_IDS_KEY = "removedChildrenIds"
PHASE_ACTION_KEY = "action"


class ScheduleAction(str, Enum):
    """Tag stored in schedule ``pendingAction`` and phase ``action``."""
    REMOVE_CHILDREN = "remove_children"
    CANCEL_ALL = "cancel_all"


_child_ids_adapter = TypeAdapter(List[StrictStr])


def _parse_child_ids(value: Any) -> Any:
    """Accept either a JSON array string (as stored in Stripe) or a list."""
    if isinstance(value, str):
        return json.loads(value)
    return value


def _dump_child_ids(ids: List[str]) -> str:
    return json.dumps(list(ids))


def _unique(ids: List[str]) -> List[str]:
    """De-duplicate while keeping first-seen order."""
    return list(dict.fromkeys(ids))


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid')


# =============================================================================
# Subscription metadata
# =============================================================================

class SubscriptionMetadata(_Payload):
    """Children currently paid for on a subscription."""
    parent_id: StrictStr
    children_ids: List[StrictStr] = Field(default_factory=list)
    children_count: NonNegativeInt = 0

    _parse_ids = field_validator('children_ids', mode='before')(_parse_child_ids)

    def encode(self) -> Dict[str, str]:
        return {
            VERSION_KEY: METADATA_VERSION,
            PARENT_ID_KEY: self.parent_id,
            CHILDREN_IDS_KEY: _dump_child_ids(self.children_ids),
            CHILDREN_COUNT_KEY: str(self.children_count),
        }


# =============================================================================
# Schedule metadata (tagged variant)
# =============================================================================

class RemoveChildrenPending(_Payload):
    """Some children leave at the period boundary; the rest continue."""
    action: Literal['remove_children'] = 'remove_children'
    parent_id: StrictStr
    removed_children_ids: List[StrictStr] = Field(default_factory=list)

    _parse_ids = field_validator('removed_children_ids', mode='before')(_parse_child_ids)


class CancelAllPending(_Payload):
    """The whole subscription ends at the period boundary."""
    action: Literal['cancel_all'] = 'cancel_all'
    parent_id: StrictStr
    removed_children_ids: List[StrictStr] = Field(default_factory=list)

    _parse_ids = field_validator('removed_children_ids', mode='before')(_parse_child_ids)


PendingState = Annotated[Union[RemoveChildrenPending, CancelAllPending], Field(discriminator='action')]

_pending_state_adapter = TypeAdapter(PendingState)


# =============================================================================
# Schedule phase metadata
# =============================================================================

class RemovalPhaseMetadata(_Payload):
    """Composition that takes effect when phase 1 starts."""
    action: Literal['remove_children'] = 'remove_children'
    parent_id: StrictStr
    children_count: NonNegativeInt
    removed_children_ids: List[StrictStr] = Field(default_factory=list)
    children_ids: Optional[List[StrictStr]] = None

    _parse_ids = field_validator('removed_children_ids', 'children_ids', mode='before')(_parse_child_ids)

    def encode(self) -> Dict[str, str]:
        data = {
            VERSION_KEY: METADATA_VERSION,
            PARENT_ID_KEY: self.parent_id,
            CHILDREN_COUNT_KEY: str(self.children_count),
            REMOVED_CHILDREN_IDS_KEY: _dump_child_ids(self.removed_children_ids),
            PHASE_ACTION_KEY: self.action,
        }
        if self.children_ids is not None:
            data[CHILDREN_IDS_KEY] = _dump_child_ids(self.children_ids)
        return data


# =============================================================================
# Encoding
# =============================================================================

def encode_subscription_metadata(parent_id: str, children_ids: List[str], children_count: int = None) -> Dict[str, str]:
    """
    Encode subscription metadata.

    Args:
        parent_id: Paying parent
        children_ids: Children paid for (duplicates are dropped)
        children_count: Billed children; defaults to len(children_ids)

    Returns:
        String-valued metadata dict for Stripe
    """
    ids = _unique(children_ids)
    count = len(ids) if children_count is None else children_count
    return SubscriptionMetadata(parent_id=parent_id, children_ids=ids, children_count=count).encode()


def encode_schedule_metadata(state: Union[RemoveChildrenPending, CancelAllPending]) -> Dict[str, str]:
    """Encode a pending state for a schedule's metadata."""
    return {
        VERSION_KEY: METADATA_VERSION,
        PARENT_ID_KEY: state.parent_id,
        PENDING_ACTION_KEY: state.action,
        REMOVED_CHILDREN_IDS_KEY: _dump_child_ids(_unique(state.removed_children_ids)),
    }


def encode_removal_phase_metadata(
    parent_id: str,
    children_count: int,
    removed_children_ids: List[str],
    children_ids: Optional[List[str]] = None
) -> Dict[str, str]:
    """Encode metadata for a schedule's removal phase."""
    return RemovalPhaseMetadata(
        parent_id=parent_id,
        children_count=children_count,
        removed_children_ids=_unique(removed_children_ids),
        children_ids=_unique(children_ids) if children_ids is not None else None,
    ).encode()


# =============================================================================
# Decoding (fail-open)
# =============================================================================

def _as_dict(metadata: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not metadata:
        return {}
    # StripeObject metadata behaves like a mapping
    return {key: metadata[key] for key in metadata.keys()}


def _version_ok(data: Dict[str, Any], source: str) -> bool:
    version = data.get(VERSION_KEY, METADATA_VERSION)
    if version != METADATA_VERSION:
        logger.error(f"[METADATA] Unsupported {source} metadata version {version!r}, treating as empty (severity=high)")
        return False
    return True


def decode_child_ids(raw: Optional[str], source: str = "metadata") -> List[str]:
    """
    Decode a JSON array of child ids.

    Returns:
        The ids, or [] when absent or malformed (malformed input is logged)
    """
    if not raw:
        return []
    try:
        return _child_ids_adapter.validate_json(raw)
    except ValidationError as e:
        logger.error(f"[METADATA] Malformed child ids in {source}, treating as empty (severity=high): {e.errors()[0]['msg']}")
        return []


def decode_subscription_children(metadata: Optional[Mapping[str, Any]]) -> List[str]:
    """Children ids recorded on a subscription, or [] on absent/malformed data."""
    data = _as_dict(metadata)
    if not _version_ok(data, "subscription"):
        return []
    return decode_child_ids(data.get(CHILDREN_IDS_KEY), source="subscription metadata")


def decode_subscription_metadata(metadata: Optional[Mapping[str, Any]]) -> Optional[SubscriptionMetadata]:
    """Full subscription payload, or None on absent/malformed data."""
    data = _as_dict(metadata)
    if PARENT_ID_KEY not in data or not _version_ok(data, "subscription"):
        return None
    try:
        return SubscriptionMetadata(
            parent_id=data.get(PARENT_ID_KEY),
            children_ids=data.get(CHILDREN_IDS_KEY) or "[]",
            children_count=data.get(CHILDREN_COUNT_KEY) or 0,
        )
    except (ValidationError, ValueError) as e:
        logger.error(f"[METADATA] Malformed subscription metadata, treating as empty (severity=high): {e}")
        return None


def decode_schedule_metadata(
    metadata: Optional[Mapping[str, Any]]
) -> Optional[Union[RemoveChildrenPending, CancelAllPending]]:
    """
    Decode a schedule's pending state.

    Returns:
        RemoveChildrenPending or CancelAllPending, or None when the schedule
        carries no pending action or the payload is rejected
    """
    data = _as_dict(metadata)
    if PENDING_ACTION_KEY not in data:
        return None
    if not _version_ok(data, "schedule"):
        return None
    try:
        return _pending_state_adapter.validate_python({
            'action': data.get(PENDING_ACTION_KEY),
            'parent_id': data.get(PARENT_ID_KEY),
            'removed_children_ids': data.get(REMOVED_CHILDREN_IDS_KEY) or "[]",
        })
    except (ValidationError, ValueError) as e:
        logger.error(f"[METADATA] Malformed schedule metadata, treating as no pending state (severity=high): {e}")
        return None


def decode_removal_phase_metadata(metadata: Optional[Mapping[str, Any]]) -> Optional[RemovalPhaseMetadata]:
    """Decode a removal phase payload, or None when absent/rejected."""
    data = _as_dict(metadata)
    if PHASE_ACTION_KEY not in data:
        return None
    if not _version_ok(data, "phase"):
        return None
    try:
        return RemovalPhaseMetadata(
            action=data.get(PHASE_ACTION_KEY),
            parent_id=data.get(PARENT_ID_KEY),
            children_count=data.get(CHILDREN_COUNT_KEY),
            removed_children_ids=data.get(REMOVED_CHILDREN_IDS_KEY) or "[]",
            children_ids=data.get(CHILDREN_IDS_KEY),
        )
    except (ValidationError, ValueError) as e:
        logger.error(f"[METADATA] Malformed phase metadata, treating as empty (severity=high): {e}")
        return None


def pending_removal_ids(metadata: Optional[Mapping[str, Any]]) -> List[str]:
    """Children pending removal on a schedule, or [] when none/malformed."""
    state = decode_schedule_metadata(metadata)
    return list(state.removed_children_ids) if state else []
