"""
This module provides language-specific user messages, labels and defaults for
the production assistant, plus the instructions that tell the model which
language to use for the localized half of every text pair.
"""

import re
from functools import lru_cache
from typing import Dict, List

# Language configurations with metadata
LANGUAGE_CONFIGS = {
    "en": {
        "name": "English",
        "rtl": False,
        "family": "germanic"
    },
    "vi": {
        "name": "Vietnamese",
        "rtl": False,
        "family": "austroasiatic"
    },
    "ja": {
        "name": "Japanese",
        "rtl": False,
        "family": "japonic"
    }
}

_CATALOG = {
    "en": {
        # pipeline failures
        "story_failed": "Rate limit or API error. Please wait a moment and try again.",
        "breakdown_failed": "Shot analysis and background optimization failed. Please try again.",
        "audit_failed": "Continuity analysis failed. Please retry in a few seconds (API error or overload).",
        "optimize_failed": "Background optimization failed. Please try again shortly.",
        "fix_failed": "Could not create the transition shot. Please try again.",
        "promote_failed": "Could not create the master background description.",
        "translate_failed": "Translation failed. Please try again.",
        "keyframes_failed": "Keyframe generation failed. Please try again.",
        "sounds_failed": "Ambient sound scan failed. Please try again.",
        # input validation
        "story_missing": "Generate or write a story before breaking it into shots.",
        "idea_missing": "Describe your story idea first.",
        "manual_story_empty": "Enter at least one story beat, one per line.",
        "audit_no_scenes": "Finish the story step to get a shot list before checking continuity.",
        "optimize_no_scenes": "Finish the script before optimizing backgrounds.",
        "fix_unparseable": 'Cannot locate where to insert a transition from "{position}". At least two shot numbers are needed.',
        "fix_unknown_shots": "Those shot numbers do not exist in the current shot list.",
        "report_missing": "Run a continuity audit first.",
        "issue_missing": "No continuity issue with id {issue_id}.",
        "background_missing": "No background with id {background_id}.",
        "character_missing": "No character with id {character_id}.",
        "scene_missing": "No shot with id {scene_id}.",
        "elements_missing": "Name at least one element to animate.",
        "name_required": "A name is required.",
        "design_empty": "Add at least one character or background before applying the design.",
        "design_applied": "Design applied! Production prompts are now unlocked.",
        "prompts_locked": "Production prompts unlock once the shot list exists and the design is applied.",
        "import_invalid": "Invalid project JSON file.",
        "import_failed": "Error while loading the project.",
        # defaults
        "project_name": "Untitled Animated Short",
        "unknown_age": "Unknown",
        "ordinary_personality": "Ordinary",
        "everyday_clothing": "Everyday wear",
        "pending_design": "Awaiting design",
        "manual_character": "Character added by hand",
        "manual_background": "Background added by hand",
        "daytime": "Daytime",
        "neutral_time": "Neutral",
        "clear_weather": "Clear",
        "summer": "Summer",
        "manual_logline": "Self-written script",
        "unknown_setting": "Undetermined",
        "manual_titles": ["A Self-Told Adventure", "Pieces of Memory", "Whispers from the Script"],
        "fix_context": "Repair a continuity break detected by the audit.",
        # shot list labels
        "label_location": "Location",
        "label_time": "Time of day",
        "label_duration": "Duration",
        "label_shot_type": "Shot type",
        "label_action": "Action",
        "label_action_en": "English description",
        "label_motion": "Motion",
        "label_audio": "Audio",
        "label_visual": "Visual notes",
    },
    "vi": {
        "story_failed": "Giới hạn lưu lượng hoặc lỗi API. Vui lòng đợi giây lát và thử lại.",
        "breakdown_failed": "Có lỗi xảy ra khi phân tích cú máy và tối ưu bối cảnh. Vui lòng thử lại.",
        "audit_failed": "Có lỗi xảy ra khi phân tích mạch phim. Vui lòng thử lại sau vài giây (Lỗi API hoặc quá tải).",
        "optimize_failed": "Lỗi khi phân tích tối ưu bối cảnh. Vui lòng thử lại sau giây lát.",
        "fix_failed": "Lỗi khi tạo cảnh chuyển tiếp. Vui lòng thử lại.",
        "promote_failed": "Lỗi khi tạo mô tả Master BG.",
        "translate_failed": "Lỗi dịch thuật. Vui lòng thử lại.",
        "keyframes_failed": "Lỗi khi tạo khung hình. Vui lòng thử lại.",
        "sounds_failed": "Lỗi khi quét âm thanh môi trường. Vui lòng thử lại.",
        "story_missing": "Hãy tạo hoặc tự soạn cốt truyện trước khi chia shot.",
        "idea_missing": "Hãy nhập ý tưởng câu chuyện trước.",
        "manual_story_empty": "Nhập ít nhất một diễn biến, mỗi dòng một diễn biến.",
        "audit_no_scenes": "Vui lòng hoàn thành bước 'Cốt truyện' để có danh sách cú máy trước khi kiểm tra mạch phim.",
        "optimize_no_scenes": "Vui lòng hoàn thành kịch bản trước khi tối ưu bối cảnh.",
        "fix_unparseable": 'Không thể xác định vị trí để chèn cảnh chuyển từ nội dung: "{position}". AI cần trả về ít nhất 2 số thứ tự cảnh.',
        "fix_unknown_shots": "Số thứ tự cảnh quay không tồn tại trong danh sách hiện tại.",
        "report_missing": "Hãy chạy kiểm tra mạch phim trước.",
        "issue_missing": "Không có vấn đề mạch phim với mã {issue_id}.",
        "background_missing": "Không có bối cảnh với mã {background_id}.",
        "character_missing": "Không có nhân vật với mã {character_id}.",
        "scene_missing": "Không có cú máy với mã {scene_id}.",
        "elements_missing": "Hãy nêu ít nhất một thành phần cần diễn hoạt.",
        "name_required": "Cần nhập tên.",
        "design_empty": "Vui lòng thêm ít nhất một nhân vật hoặc bối cảnh trước khi áp dụng.",
        "design_applied": "Thiết kế đã được áp dụng! Module 'Prompt Sản xuất' đã được mở khóa.",
        "prompts_locked": "Prompt sản xuất chỉ mở khi đã có danh sách shot và thiết kế đã được áp dụng.",
        "import_invalid": "Tệp JSON không hợp lệ.",
        "import_failed": "Lỗi khi tải dự án.",
        "project_name": "Phim hoạt hình chưa đặt tên",
        "unknown_age": "Chưa rõ",
        "ordinary_personality": "Bình thường",
        "everyday_clothing": "Thường nhật",
        "pending_design": "Đang chờ thiết kế",
        "manual_character": "Nhân vật được thêm thủ công",
        "manual_background": "Bối cảnh được thêm thủ công",
        "daytime": "Ban ngày",
        "neutral_time": "Trung tính",
        "clear_weather": "Trong trẻo",
        "summer": "Mùa hè",
        "manual_logline": "Kịch bản tự biên soạn",
        "unknown_setting": "Chưa xác định",
        "manual_titles": ["Chuyến phiêu lưu tự kể", "Mảnh ghép ký ức", "Lời thì thầm từ kịch bản"],
        "fix_context": "Sửa lỗi đứt gãy mạch phim được phát hiện bởi hệ thống kiểm soát.",
        "label_location": "Bối cảnh",
        "label_time": "Thời điểm",
        "label_duration": "Thời lượng",
        "label_shot_type": "Góc quay",
        "label_action": "Diễn biến",
        "label_action_en": "Mô tả tiếng Anh",
        "label_motion": "Chuyển động (Motion)",
        "label_audio": "Âm thanh (Audio)",
        "label_visual": "Ghi chú hình ảnh",
    },
}

STORY_THEMES = {
    "en": [
        "Peaceful countryside life",
        "Coming-of-age journey",
        "Nature and the forest spirits",
        "Lands of magic and mystery",
        "Flying castles and vintage machines",
        "Love, nostalgia and the seaside town",
        "Blue ocean wonders",
        "The tiny world under the floorboards",
        "Magic in everyday life",
    ],
    "vi": [
        "Cuộc sống Đồng quê yên bình",
        "Hành trình Tuổi trưởng thành",
        "Thiên nhiên & Linh hồn Rừng xanh",
        "Vùng đất Phép thuật & Bí ẩn",
        "Lâu đài Bay & Công nghệ Cổ điển",
        "Tình yêu, Hoài niệm & Thành phố Biển",
        "Đại dương xanh & Điều kỳ diệu",
        "Thế giới Tí hon dưới sàn nhà",
        "Phép màu giữa đời thường",
    ],
}

# Preset film lengths, in target seconds
LENGTH_PRESETS = {
    "Short": 60,
    "Medium": 180,
    "Long": 300,
    "Ngắn": 60,
    "Trung bình": 180,
    "Dài": 300,
}

_SECOND_UNITS = ("giây", "second", "sec", "秒")


def parse_target_seconds(length: str) -> int:
    """Turn a length preset or free text ("90 seconds", "2 phút") into seconds"""
    for preset, seconds in LENGTH_PRESETS.items():
        if preset in length:
            return seconds

    match = re.search(r"\d+", length)
    if not match:
        return 60

    value = int(match.group(0))
    lowered = length.lower()
    if any(unit in lowered for unit in _SECOND_UNITS):
        return value
    return value * 60


def get_supported_languages() -> Dict[str, str]:
    """Get all supported languages with their display names"""
    return {code: config["name"] for code, config in LANGUAGE_CONFIGS.items()}


@lru_cache(maxsize=16)
def get_catalog(language_code: str) -> dict:
    """Get the message catalog for a language, falling back to English per key"""
    catalog = dict(_CATALOG["en"])
    catalog.update(_CATALOG.get(language_code, {}))
    return catalog


def get_text(language_code: str, key: str, **values) -> str:
    """Look up a localized message and fill in its placeholders"""
    text = get_catalog(language_code)[key]
    return text.format(**values) if values else text


def get_story_themes(language_code: str) -> List[str]:
    return list(STORY_THEMES.get(language_code, STORY_THEMES["en"]))


def get_language_instruction(language_code: str) -> str:
    """Tell the model which language the localized fields must use"""
    language_instructions = {
        "en": "Write every localized field in English.",
        "vi": "Write every localized field in Vietnamese (tiếng Việt), natural and fluent.",
        "ja": "Write every localized field in Japanese (日本語), natural and fluent.",
    }

    instruction = language_instructions.get(language_code, language_instructions["en"])
    return f"{instruction} Fields ending in _en are always written in English."
