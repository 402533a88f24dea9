# Configuration and constants.

# DICE_PROBABILITY_LOOP_LIMIT # can be provided in the environment

# Characters skipped between tokens, including the ideographic space.
WHITESPACE = " \t\n　"
PROBABILITY_LOOP_LIMIT_ENV = "DICE_PROBABILITY_LOOP_LIMIT"
DEFAULT_PROBABILITY_LOOP_LIMIT = None  # no limit
DIAGNOSTIC_POINTER = "^"
