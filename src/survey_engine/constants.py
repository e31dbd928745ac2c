"""Survey engine constants shared across the SDK.

These values are referenced by the schema models, validation engine,
normaliser, and navigator.  They mirror conventions encoded in the YAML
questionnaires under ``v1/questionnaires/``.

Several constants can be overridden via environment variables so that
deployments can adjust questionnaire conventions without code changes.
"""

import os

# Closed set of question types, keyed by the wire name used in schema files.
# Every validator / normaliser dispatch table must cover all of these.
QUESTION_TYPES: tuple[str, ...] = (
    "text",
    "email",
    "number",
    "textarea",
    "select",
    "radio",
    "checkbox",
    "matrix",
    "map",
    "time",
    "radio-number",
    "radio-text",
    "select-text",
    "checkbox-text",
    "region-long-answer",
    "train-schedule-request",
)

# Free-text question types, counted as "text responses" in session metrics.
TEXT_RESPONSE_TYPES: set[str] = {"text", "textarea", "email"}

# Option label that unlocks the free-text field on select-text /
# checkbox-text questions.  Overridable via SURVEY_OTHER_OPTION.
OTHER_OPTION = os.getenv("SURVEY_OTHER_OPTION", "其他")

# Defaults for optional question payload fields.
DEFAULT_TIME_FORMAT = os.getenv("SURVEY_DEFAULT_TIME_FORMAT", "YYYY-MM")
DEFAULT_MIN_BLOCKS = int(os.getenv("SURVEY_DEFAULT_MIN_BLOCKS", "1"))
DEFAULT_MAX_BLOCKS = int(os.getenv("SURVEY_DEFAULT_MAX_BLOCKS", "5"))
DEFAULT_SHOW_SCHEDULE_WHEN = "需要增加班次"

# Shape-only patterns per time format.  Values are compared lexicographically
# against min/max bounds, so only order-preserving formats are listed.
TIME_FORMAT_PATTERNS: dict[str, str] = {
    "YYYY": r"^[0-9]{4}$",
    "YYYY-MM": r"^[0-9]{4}-[0-9]{2}$",
    "YYYY-MM-DD": r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$",
    "MM-DD": r"^[0-9]{2}-[0-9]{2}$",
    "HH:mm": r"^[0-9]{2}:[0-9]{2}$",
    # Both "2024-01-31 08:30" and "2024-01-31T08:30" are accepted
    "YYYY-MM-DD HH:mm": r"^[0-9]{4}-[0-9]{2}-[0-9]{2}[ T][0-9]{2}:[0-9]{2}$",
}

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# Sub-fields every region-long-answer block must fill.
REGION_BLOCK_FIELDS: tuple[str, ...] = ("region", "location", "reason")

# Sub-fields every train-schedule-request entry must fill.
SCHEDULE_FIELDS: tuple[str, ...] = ("startStation", "endStation", "schedule")

# User-facing validation messages (questionnaires are in Traditional Chinese).
MESSAGES: dict[str, str] = {
    "required": "此欄位為必填",
    "invalid_option": "無效的選項: {value}",
    "matrix_incomplete": "請完成以下項目的評分: {rows}",
    "blocks_min": "至少需要填寫 {min_blocks} 個項目",
    "blocks_incomplete": "請完成第 {indices} 項的所有欄位",
    "schedule_incomplete": "請完成第 {indices} 筆班次需求的所有欄位",
    "number_input": "請輸入{label}",
    "number_input_max": "{label}不能大於 {max}",
    "text_input": "請輸入{label}",
    "text_min_length": "文字長度至少需要 {min} 個字符",
    "text_max_length": "文字長度不能超過 {max} 個字符",
    "number_invalid": "請輸入有效的數字",
    "number_min": "最小值為 {min}",
    "number_max": "最大值為 {max}",
    "length_min": "最少需要 {min} 個字符",
    "length_max": "最多允許 {max} 個字符",
    "pattern": "格式無效",
    "email": "請輸入有效的電子郵件地址",
    "time_format": "請使用正確的時間格式: {format}",
    "time_min": "時間不能早於 {min_date}",
    "time_max": "時間不能晚於 {max_date}",
}

# Default sub-field labels used inside messages.
DEFAULT_NUMBER_LABEL = "數字"
DEFAULT_TEXT_LABEL = "文字"
