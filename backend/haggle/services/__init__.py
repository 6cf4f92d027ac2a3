"""Negotiation engine services."""

from .offer_extractor import ExtractorConfig, extract_offer, score_candidates, select_offer
from .matchmaking import Pairing, PairingResult, make_pairs
from .negotiation import ConfirmationOutcome, ConfirmationStatus
from .round_results import compile_round_results, room_overview
from .connection_hub import ConnectionHub

__all__ = [
    "ExtractorConfig",
    "extract_offer",
    "score_candidates",
    "select_offer",
    "Pairing",
    "PairingResult",
    "make_pairs",
    "ConfirmationOutcome",
    "ConfirmationStatus",
    "compile_round_results",
    "room_overview",
    "ConnectionHub",
]
