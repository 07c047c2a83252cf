# states_conv/constants.py
from __future__ import annotations

# Block-form type keyword -> canonical `Type` value. Order is the order used
# when listing valid keywords in diagnostics.
STATE_TYPE_KEYWORDS: dict[str, str] = {
    "task": "Task",
    "choice": "Choice",
    "fail": "Fail",
    "parallel": "Parallel",
    "map": "Map",
    "succeed": "Succeed",
    "wait": "Wait",
    "pass": "Pass",
}

# (model field, block attribute, canonical key, value type). Emission order for
# both encoders.
STATE_FIELDS: tuple[tuple[str, str, str, str], ...] = (
    ("comment", "comment", "Comment", "string"),
    ("resource", "resource", "Resource", "string"),
    ("default", "default", "Default", "string"),
    ("seconds", "seconds", "Seconds", "number"),
    ("max_concurrency", "max_concurrency", "MaxConcurrency", "number"),
    ("next", "next", "Next", "string"),
    ("items_path", "items_path", "ItemsPath", "string"),
    ("input_path", "input_path", "InputPath", "string"),
    ("output_path", "output_path", "OutputPath", "string"),
    ("result_path", "result_path", "ResultPath", "string"),
    ("end", "end", "End", "bool"),
    ("error", "error", "Error", "string"),
    ("cause", "cause", "Cause", "string"),
    ("retry", "retry", "Retry", "fragments"),
    ("catch", "catch", "Catch", "fragments"),
    ("parameters", "parameters", "Parameters", "fragment"),
    ("result", "result", "Result", "fragment"),
    ("result_selector", "result_selector", "ResultSelector", "fragment"),
    ("choices", "choices", "Choices", "fragments"),
)

# Fields holding the name of another state in the same scope.
STATE_REFERENCE_FIELDS: tuple[str, ...] = ("default", "next")

# (model field, block attribute, canonical key, value type) for a scope.
DOCUMENT_FIELDS: tuple[tuple[str, str, str, str], ...] = (
    ("version", "version", "Version", "string"),
    ("comment", "comment", "Comment", "string"),
    ("timeout_seconds", "timeout_seconds", "TimeoutSeconds", "number"),
)

# Accepted on decode only; older writers used this key for TimeoutSeconds.
LEGACY_TIMEOUT_KEY = "TimeSeconds"

# Block types of the block form.
STATE_BLOCK = "state"
LOCALS_BLOCK = "locals"
BRANCH_BLOCK = "branch"
ITERATOR_BLOCK = "iterator"

# Evaluation namespaces.
STATE_NAMESPACE = "state"
LOCAL_NAMESPACE = "local"

MAX_EVAL_ROUNDS_DEFAULT = 100

# Suggestions are offered below this Levenshtein distance.
SUGGESTION_DISTANCE = 3

GRAPH_NAME_DEFAULT = "G"
DEFAULT_HCL_FILENAME = "asl.hcl"

# Source files picked up when a directory is given as block-form input.
DIRECTORY_SOURCE_SUFFIXES: tuple[str, ...] = (".hcl", ".json")
