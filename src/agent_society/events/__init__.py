"""Agent Society events - record model, kinds, builders, parsers and resolution."""

from .builders import (
    build_follow_list_event,
    build_peer_info_event,
    build_spsp_info_event,
    build_spsp_request,
    build_spsp_response,
    peer_advertisement_to_dict,
)
from .kinds import (
    FOLLOW_LIST_KIND,
    ILP_PEER_INFO_KIND,
    SPSP_INFO_KIND,
    SPSP_REQUEST_KIND,
    SPSP_RESPONSE_KIND,
    is_ephemeral,
)
from .models import (
    Asset,
    EventTemplate,
    FollowEdge,
    PeerAdvertisement,
    Record,
    SettlementMethod,
    SpspErrorInfo,
    SpspInfo,
    SpspRequest,
    SpspResponse,
    is_valid_identity,
    normalize_identity,
    validate_identity,
)
from .parsers import (
    is_well_formed,
    parse,
    parse_follow_list,
    parse_peer_info,
    parse_spsp_info,
    parse_spsp_request,
    parse_spsp_response,
)
from .resolver import (
    ReplaceableResolver,
    is_newer,
    resolve_latest,
    resolve_latest_by_author,
    resolve_partitions,
)

__all__ = [
    # Kinds
    "FOLLOW_LIST_KIND",
    "ILP_PEER_INFO_KIND",
    "SPSP_INFO_KIND",
    "SPSP_REQUEST_KIND",
    "SPSP_RESPONSE_KIND",
    "is_ephemeral",
    # Models
    "Asset",
    "EventTemplate",
    "FollowEdge",
    "PeerAdvertisement",
    "Record",
    "SettlementMethod",
    "SpspErrorInfo",
    "SpspInfo",
    "SpspRequest",
    "SpspResponse",
    "is_valid_identity",
    "normalize_identity",
    "validate_identity",
    # Builders
    "build_follow_list_event",
    "build_peer_info_event",
    "build_spsp_info_event",
    "build_spsp_request",
    "build_spsp_response",
    "peer_advertisement_to_dict",
    # Parsers
    "is_well_formed",
    "parse",
    "parse_follow_list",
    "parse_peer_info",
    "parse_spsp_info",
    "parse_spsp_request",
    "parse_spsp_response",
    # Resolver
    "ReplaceableResolver",
    "is_newer",
    "resolve_latest",
    "resolve_latest_by_author",
    "resolve_partitions",
]
