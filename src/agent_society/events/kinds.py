# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Nostr event kinds used by the Agent Society protocol.

Range 10000-19999 is replaceable (only the newest record per author and
kind is authoritative); range 20000-29999 is ephemeral (relays forward
but do not store).
"""

# ILP peer advertisement (replaceable). Content: JSON PeerAdvertisement.
ILP_PEER_INFO_KIND = 10032

# Static SPSP parameters (replaceable). Content: JSON SpspInfo.
SPSP_INFO_KIND = 10047

# Fresh SPSP parameter request (ephemeral). Content: NIP-44 encrypted SpspRequest.
SPSP_REQUEST_KIND = 23194

# SPSP response (ephemeral). Content: NIP-44 encrypted SpspResponse.
SPSP_RESPONSE_KIND = 23195

# NIP-02 follow list (replaceable).
FOLLOW_LIST_KIND = 3


def is_ephemeral(kind: int) -> bool:
    """True for one-shot kinds that relays do not persist."""
    return 20000 <= kind < 30000
