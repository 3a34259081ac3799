"""
Prediction payloads
User inputs sent to the prediction service, their validation functions, and the typed results it returns
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

Issue = Dict[str, str]

HSG_SUBJECTS = {
    "BIOLOGY": "Sinh",
    "CHEMISTRY": "Hoá",
    "CHINESE": "Tiếng Trung",
    "ENGLISH": "Anh",
    "FRENCH": "Tiếng Pháp",
    "GEOGRAPHY": "Địa",
    "HISTORY": "Sử",
    "INFORMATION_TECHNOLOGY": "Tin",
    "JAPANESE": "Tiếng Nhật",
    "LITERATURE": "Văn",
    "MATHEMATICS": "Toán",
    "PHYSICS": "Lý",
    "RUSSIAN": "Tiếng Nga",
}

# Transcript subject keys expected by the L3 endpoint, with the OCR subject names that map onto them
TRANSCRIPT_SUBJECTS = {
    "anh": ("anh", "tiếng anh", "tieng anh", "english"),
    "cong_nghe_cong_nghiep": ("cong_nghe_cong_nghiep", "công nghệ", "cong nghe", "technology"),
    "dia": ("dia", "địa lý", "dia ly", "địa", "geography"),
    "gdkt_pl": ("gdkt_pl", "giáo dục kinh tế và pháp luật", "gdktpl", "economics and law"),
    "hoa": ("hoa", "hóa học", "hoá học", "hoa hoc", "chemistry"),
    "ly": ("ly", "vật lý", "vat ly", "vật lí", "physics"),
    "sinh": ("sinh", "sinh học", "sinh hoc", "biology"),
    "su": ("su", "lịch sử", "lich su", "history"),
    "tin": ("tin", "tin học", "tin hoc", "informatics"),
    "toan": ("toan", "toán", "toán học", "mathematics", "math"),
    "van": ("van", "ngữ văn", "ngu van", "văn", "literature"),
}

TRANSCRIPT_GRADES = (10, 11, 12)


def _is_binary_flag(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value in (0, 1)


def _is_major_group(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 100 <= value <= 999


def _is_rank(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value in (1, 2, 3, 4)


def _check_common(payload: Dict[str, Any], issues: List[Issue]) -> None:
    if not _is_binary_flag(payload.get("cong_lap")):
        issues.append({"field": "cong_lap", "message": "must be 0 or 1"})
    hoc_phi = payload.get("hoc_phi")
    if not isinstance(hoc_phi, int) or isinstance(hoc_phi, bool) or hoc_phi < 0:
        issues.append({"field": "hoc_phi", "message": "must be a non-negative integer"})
    if not _is_major_group(payload.get("nhom_nganh")):
        issues.append({"field": "nhom_nganh", "message": "must be a three-digit major group code"})
    tinh_tp = payload.get("tinh_tp")
    if not isinstance(tinh_tp, str) or not tinh_tp.strip():
        issues.append({"field": "tinh_tp", "message": "must be a non-empty string"})


@dataclass
class UserInputL1:
    """L1 input: priority flags, national awards and preferences for one major group"""
    ahld: int
    cong_lap: int
    dan_toc_thieu_so: int
    haimuoi_huyen_ngheo_tnb: int
    hoc_phi: int
    nhom_nganh: int
    tinh_tp: str
    hsg_1: Union[str, int] = 0
    hsg_2: Union[str, int] = 0
    hsg_3: Union[str, int] = 0

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class UserInputL2:
    """L2 input: exam scenario, language certificate and conduct/performance ranks for one major group"""
    cong_lap: int
    diem_chuan: float
    hk10: int
    hk11: int
    hk12: int
    hl10: int
    hl11: int
    hl12: int
    hoc_phi: int
    nhom_nganh: int
    tinh_tp: str
    to_hop_mon: str
    ten_ccta: str = "0"
    diem_ccta: str = "0"

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class UserInputL3:
    """L3 input: per-grade transcript averages and preferences for one major group"""
    cong_lap: int
    hoc_phi: int
    nhom_nganh: int
    tinh_tp: str
    hoc_ba: Dict[str, Dict[str, float]] = field(default_factory=dict)
    priority_object: int = 0
    priority_region: int = 0
    award_qg: Optional[Dict[str, Any]] = None
    award_english: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        return {key: value for key, value in payload.items() if value is not None}


def validate_user_input_l1(user_input: UserInputL1) -> List[Issue]:
    """
    Validate an L1 input before it is sent

    Args:
        user_input: Input to check

    Returns:
        List[Issue]: One {field, message} entry per problem, empty when valid
    """
    payload = user_input.to_payload()
    issues: List[Issue] = []
    _check_common(payload, issues)
    for flag in ("ahld", "dan_toc_thieu_so", "haimuoi_huyen_ngheo_tnb"):
        if not _is_binary_flag(payload[flag]):
            issues.append({"field": flag, "message": "must be 0 or 1"})
    allowed_subjects = set(HSG_SUBJECTS.values())
    for slot in ("hsg_1", "hsg_2", "hsg_3"):
        value = payload[slot]
        if value != 0 and value not in allowed_subjects:
            issues.append({"field": slot, "message": f"unknown award subject {value!r}"})
    return issues


def validate_user_input_l2(user_input: UserInputL2) -> List[Issue]:
    """Validate an L2 input; returns {field, message} issues"""
    payload = user_input.to_payload()
    issues: List[Issue] = []
    _check_common(payload, issues)
    for rank in ("hk10", "hk11", "hk12", "hl10", "hl11", "hl12"):
        if not _is_rank(payload[rank]):
            issues.append({"field": rank, "message": "must be a rank between 1 and 4"})
    diem_chuan = payload["diem_chuan"]
    if not isinstance(diem_chuan, (int, float)) or isinstance(diem_chuan, bool) or diem_chuan < 0:
        issues.append({"field": "diem_chuan", "message": "must be a non-negative number"})
    if not isinstance(payload["to_hop_mon"], str) or not payload["to_hop_mon"].strip():
        issues.append({"field": "to_hop_mon", "message": "must be a non-empty subject group"})
    return issues


def validate_user_input_l3(user_input: UserInputL3) -> List[Issue]:
    """Validate an L3 input, including every transcript score of grades 10-12"""
    payload = user_input.to_payload()
    issues: List[Issue] = []
    _check_common(payload, issues)
    for grade in TRANSCRIPT_GRADES:
        key = f"grade_{grade}"
        scores = user_input.hoc_ba.get(key)
        if not scores:
            issues.append({"field": f"hoc_ba.{key}", "message": "transcript scores are missing"})
            continue
        for subject in ("toan", "van"):
            if subject not in scores:
                issues.append({"field": f"hoc_ba.{key}.{subject}", "message": "is required"})
        for subject, score in scores.items():
            if not isinstance(score, (int, float)) or not 0 <= score <= 10:
                issues.append({"field": f"hoc_ba.{key}.{subject}", "message": "must be between 0 and 10"})
    return issues


class L1PredictResult(BaseModel):
    """Admission codes and scores for one priority type"""
    loai_uu_tien: str = Field(..., min_length=1)
    ma_xet_tuyen: Dict[str, float]


class L2PredictResult(BaseModel):
    """Admission code with its match score"""
    ma_xet_tuyen: str = Field(..., min_length=1)
    score: float


class L3PredictionItem(BaseModel):
    best_to_hop: List[str]
    best_to_hop_score: float
    bonus_points: float
    diem_chuan: float
    ma_nganh: str
    nhom_nganh: int
    ten_nganh: str
    total_score: float


class L3PredictResult(BaseModel):
    """Predicted majors keyed by university code"""
    result: Dict[str, List[L3PredictionItem]]

    def is_empty(self) -> bool:
        return not any(self.result.values())

    def signature(self) -> str:
        majors = sorted(
            f"{university}:{item.ma_nganh}"
            for university, items in self.result.items()
            for item in items
        )
        return "|".join(majors)


class ValidationIssue(BaseModel):
    loc: List[Union[str, int]]
    msg: str
    type: str


class HTTPValidationError(BaseModel):
    """422 body returned by the prediction service"""
    detail: List[ValidationIssue]
