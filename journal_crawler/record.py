"""
Journal Detail Record
=====================
Fixed-schema record produced for every accepted journal.

Every field is a string. A field the extractor could not populate holds
``UNKNOWN`` rather than being absent, so rows always have the same shape
and the same column order in every sink.
"""

from dataclasses import dataclass, field, fields, asdict
from typing import Dict, List, Mapping, Optional

UNKNOWN = "未知"


def _col(label: str):
    return field(default=UNKNOWN, metadata={"label": label})


@dataclass
class DetailRecord:
    """One journal. Keyed by ``title`` in the store."""

    # ---- Basic information ----
    title: str = _col("期刊名称")
    cn_number: str = _col("CN号")
    issn: str = _col("ISSN")
    database_tags: str = _col("数据库标识")
    former_name: str = _col("曾用刊名")
    publisher: str = _col("主办单位")
    publish_cycle: str = _col("出版周期")
    publish_place: str = _col("出版地")
    language: str = _col("语种")
    format: str = _col("开本")
    founding_time: str = _col("创刊时间")
    album_name: str = _col("专辑名称")
    topic_name: str = _col("专题名称")

    # ---- Publication metrics ----
    publication_count: str = _col("出版文献量")
    total_downloads: str = _col("总下载次数")
    total_citations: str = _col("总被引次数")
    composite_factor: str = _col("复合影响因子")
    composite_factor_year: str = _col("复合影响因子年份")
    comprehensive_factor: str = _col("综合影响因子")
    comprehensive_factor_year: str = _col("综合影响因子年份")
    database_list: str = _col("数据库收录列表")

    # ---- Submission view ----
    wjci_partition: str = _col("WJCI分区")
    submission_publish_cycle: str = _col("投稿出版周期")
    submission_fee: str = _col("投稿是否收费")
    chief_editor: str = _col("主编")
    deputy_editor: str = _col("副主编")
    official_website: str = _col("官网网址")
    submission_website: str = _col("投稿网址")
    submission_email: str = _col("投稿邮箱")
    consultation_email: str = _col("咨询邮箱")
    editorial_address: str = _col("编辑部地址")
    contact_phone: str = _col("联系电话")

    retrieved_at: str = _col("获取时间")

    # -------------------------------------------------------------------
    # Schema helpers
    # -------------------------------------------------------------------
    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def headers(cls) -> List[str]:
        """Column labels in schema order (one header row per sink)."""
        return [f.metadata["label"] for f in fields(cls)]

    @classmethod
    def label_for(cls, name: str) -> str:
        return _LABELS[name]

    def is_complete_key(self) -> bool:
        """True when the record satisfies the store invariant."""
        return bool(self.title and self.title != UNKNOWN
                    and self.retrieved_at and self.retrieved_at != UNKNOWN)

    def known_fields(self) -> Dict[str, str]:
        return {k: v for k, v in asdict(self).items() if v != UNKNOWN}

    def to_row(self) -> List[str]:
        return [getattr(self, name) for name in self.field_names()]

    def to_dict(self, by_label: bool = False) -> Dict[str, str]:
        data = asdict(self)
        if by_label:
            return {_LABELS[k]: v for k, v in data.items()}
        return data

    @classmethod
    def from_mapping(cls, data: Mapping[str, Optional[object]]) -> "DetailRecord":
        """Build a record from a row keyed by field names or header labels.

        Missing, ``None`` and blank cells become ``UNKNOWN``; unknown keys
        are ignored.
        """
        values = {}
        for key, raw in data.items():
            name = key if key in _LABELS else _NAMES.get(key)
            if name is None:
                continue
            text = "" if raw is None else str(raw).strip()
            values[name] = text or UNKNOWN
        return cls(**values)

    @classmethod
    def from_row(cls, headers: List[str], row: List[Optional[object]]) -> "DetailRecord":
        return cls.from_mapping(dict(zip(headers, row)))


_LABELS: Dict[str, str] = {f.name: f.metadata["label"] for f in fields(DetailRecord)}
_NAMES: Dict[str, str] = {label: name for name, label in _LABELS.items()}
