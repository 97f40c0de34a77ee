"""All magic numbers and configuration constants."""

import os

# Alignment scoring, empirically tuned; keep exact
MATCH_WEIGHT = 6.0                  # multiplier on (similarity - baseline) for a diagonal step
MATCH_BASELINE = 0.35               # similarity that scores zero on the diagonal
GAP_LINE = 1.0                      # penalty for leaving a script line unmatched
GAP_UNIT = 0.7                      # penalty for leaving a transcript unit unmatched

# Acceptance gate thresholds, keyed by the shorter normalized length
GATE_SHORT_LEN = 2                  # chars; at or below: near-exact match required
GATE_SHORT_MIN_SIM = 0.95
GATE_MEDIUM_LEN = 6                 # chars; at or below: medium threshold
GATE_MEDIUM_MIN_SIM = 0.6
GATE_LONG_MIN_SIM = 0.35

# Unit splitting
HARD_PUNCTUATION = frozenset("。！？.!?…")   # sentence terminators
SOFT_PUNCTUATION = frozenset("，,；;：:")     # clause separators
SOFT_SPLIT_THRESHOLD = 40           # normalized chars; soft-split parts longer than this

# Markers
MARKER_EPSILON = 1e-3               # seconds; markers closer than this collapse
WINDOW_EPSILON = 1e-3               # seconds; margin kept from an edit window's edges
HISTORY_LIMIT = 200                 # max snapshots kept per marker editor

# Roles whose lines never receive audio
NON_AUDIO_SPEAKERS = ("[静音]", "音效", "[音效]")

# Storage
OUTPUT_DIR = os.getenv("SCRIPT_ALIGNER_OUTPUT_DIR", "output")
ASSET_FORMAT = "wav"                # container for sliced line assets
STATE_FILE = "state.json"
SCRIPT_FILE = "script.json"
SETTINGS_FILE = "settings.json"
VERSION = "0.1.0"
