from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from permit_ocr.extraction.models import DateKind
from permit_ocr.extraction.pattern_extractor import PatternFieldExtractor, excerpt_around

REPLY_LETTER = """台灣電力股份有限公司 函
發文日期：中華民國114年12月3日
發文字號：電業字第1140012345號
主旨：復台端114年11月21日申請之太陽光電發電設備併聯審查一案，同意備案編號120114PV0442，
設備登記編號 YUN-114PV0349，請查照。
說明：
一、裝置容量：99.36kWp，模組型號 JAM72S30-550/MR，單片功率 550W，共 180 片。
二、併聯方式：內線併聯，併聯電壓 380V。
"""


@pytest.fixture
def extractor() -> PatternFieldExtractor:
    return PatternFieldExtractor()


def _write_patterns(path: Path, data: dict) -> Path:
    path.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")
    return path


def test_reply_to_applicant_is_submission_date(extractor: PatternFieldExtractor) -> None:
    dates = extractor.extract_dates("復台端114年11月21日申請之併聯審查一案")

    submission = dates[DateKind.SUBMISSION]
    assert submission.date == "2025-11-21"
    assert submission.confidence == pytest.approx(0.85)
    assert submission.provenance == "pattern:reply_to_applicant"
    assert "復台端" in submission.surrounding_text


def test_extracts_each_kind_from_letter(extractor: PatternFieldExtractor) -> None:
    text = REPLY_LETTER + "併聯運轉日：114/12/15\n"

    dates = extractor.extract_dates(text)

    assert dates[DateKind.SUBMISSION].date == "2025-11-21"
    assert dates[DateKind.ISSUE].date == "2025-12-03"
    assert dates[DateKind.ISSUE].provenance == "pattern:issue_date_label"
    assert dates[DateKind.METER_READING].date == "2025-12-15"
    assert dates[DateKind.METER_READING].provenance == "pattern:grid_operation_label"


def test_only_requested_kinds_are_scanned(extractor: PatternFieldExtractor) -> None:
    dates = extractor.extract_dates(REPLY_LETTER, [DateKind.ISSUE])

    assert list(dates) == [DateKind.ISSUE]


def test_pattern_order_decides_winner(extractor: PatternFieldExtractor) -> None:
    text = "申請日期：114年10月1日\n復台端114年11月21日函"

    dates = extractor.extract_dates(text, [DateKind.SUBMISSION])

    assert dates[DateKind.SUBMISSION].date == "2025-11-21"
    assert dates[DateKind.SUBMISSION].provenance == "pattern:reply_to_applicant"


def test_unnormalizable_match_falls_through(extractor: PatternFieldExtractor) -> None:
    text = "發文日期：114年13月40日\n核發日期：114年12月1日"

    dates = extractor.extract_dates(text, [DateKind.ISSUE])

    assert dates[DateKind.ISSUE].date == "2025-12-01"
    assert dates[DateKind.ISSUE].provenance == "pattern:approval_label"


def test_pv_and_energy_permit_ids_do_not_cross_match(extractor: PatternFieldExtractor) -> None:
    fields = extractor.extract_fields(REPLY_LETTER, ["pv_id", "energy_permit_id"])

    assert fields.pv_id == "120114PV0442"
    assert fields.energy_permit_id == "YUN-114PV0349"
    assert fields.provenance == {
        "pv_id": "pattern:pv_id_label",
        "energy_permit_id": "pattern:energy_permit_label",
    }


def test_bare_ids_without_labels(extractor: PatternFieldExtractor) -> None:
    fields = extractor.extract_fields("案號 YUN-114PV0349 / 120114PV0442", ["pv_id", "energy_permit_id"])

    assert fields.pv_id == "120114PV0442"
    assert fields.energy_permit_id == "YUN-114PV0349"
    assert fields.provenance["pv_id"] == "pattern:pv_id_bare"


def test_equipment_fields(extractor: PatternFieldExtractor) -> None:
    fields = extractor.extract_fields(REPLY_LETTER)

    assert fields.installed_capacity_kw == pytest.approx(99.36)
    assert fields.module_model == "JAM72S30-550/MR"
    assert fields.panel_wattage == pytest.approx(550.0)
    assert fields.panel_count == 180
    assert fields.grid_connection_mode == "內線併聯"
    assert fields.voltage == "380V"


def test_field_validation_skips_out_of_range_match(extractor: PatternFieldExtractor) -> None:
    fields = extractor.extract_fields("單片功率 9999W\n550Wp x 24片", ["panel_wattage"])

    assert fields.panel_wattage == pytest.approx(550.0)
    assert fields.provenance["panel_wattage"] == "pattern:wattage_times_count"


def test_empty_text_returns_nothing(extractor: PatternFieldExtractor) -> None:
    assert extractor.extract_dates("") == {}
    assert extractor.extract_fields("").populated() == {}
    assert extractor.find_candidates("") == []


def test_candidates_are_keyword_classified(extractor: PatternFieldExtractor) -> None:
    text = "收件日 114/10/02\n" + "說明" * 15 + "\n備註 114年9月1日 現場會勘"

    candidates = extractor.find_candidates(text)

    assert [c.date for c in candidates] == ["2025-10-02", "2025-09-01"]
    assert candidates[0].kind == DateKind.SUBMISSION
    assert candidates[0].confidence == pytest.approx(0.9)
    assert candidates[0].provenance == "keyword:收件日"
    assert candidates[1].kind == DateKind.UNKNOWN
    assert candidates[1].confidence == pytest.approx(0.5)
    assert candidates[1].provenance == "scan"


def test_candidates_skip_excluded_and_repeated_dates(extractor: PatternFieldExtractor) -> None:
    text = "114年11月21日 114/11/21 2025/12/01 114年12月3日"

    candidates = extractor.find_candidates(text, exclude={"2025-12-03"})

    assert sorted(c.date for c in candidates) == ["2025-11-21", "2025-12-01"]


def test_excerpt_is_bounded() -> None:
    text = "甲" * 100 + "114年11月21日" + "乙" * 100
    start = 100
    excerpt = excerpt_around(text, start, start + 10, limit=30)

    assert len(excerpt) <= 30
    assert "114年11月21日" in excerpt


def test_missing_patterns_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        PatternFieldExtractor(tmp_path / "missing.yaml")


def test_date_pattern_requires_placeholder(tmp_path: Path) -> None:
    path = _write_patterns(
        tmp_path / "patterns.yaml",
        {"dates": {"issue": [{"name": "broken", "pattern": "發文日期"}]}},
    )

    with pytest.raises(ValueError, match="placeholder"):
        PatternFieldExtractor(path)


def test_field_pattern_requires_value_group(tmp_path: Path) -> None:
    path = _write_patterns(
        tmp_path / "patterns.yaml",
        {"fields": {"pv_id": [{"name": "broken", "pattern": r"\d{6}PV\d{4}"}]}},
    )

    with pytest.raises(ValueError, match="named group 'value'"):
        PatternFieldExtractor(path)


def test_unknown_field_in_patterns_file(tmp_path: Path) -> None:
    path = _write_patterns(
        tmp_path / "patterns.yaml",
        {"fields": {"serial": [{"name": "s", "pattern": "(?P<value>x)"}]}},
    )

    with pytest.raises(ValueError, match="Unknown field"):
        PatternFieldExtractor(path)


def test_unknown_kind_cannot_have_date_patterns(tmp_path: Path) -> None:
    path = _write_patterns(
        tmp_path / "patterns.yaml",
        {"dates": {"unknown": [{"name": "u", "pattern": "{date}"}]}},
    )

    with pytest.raises(ValueError, match="not allowed"):
        PatternFieldExtractor(path)


def test_custom_patterns_file(tmp_path: Path) -> None:
    path = _write_patterns(
        tmp_path / "patterns.yaml",
        {"dates": {"issue": [{"name": "dated", "pattern": "Dated\\s*{date}"}]}},
    )
    extractor = PatternFieldExtractor(path, confidence=0.7)

    dates = extractor.extract_dates("dated 2025/03/04")

    assert dates[DateKind.ISSUE].date == "2025-03-04"
    assert dates[DateKind.ISSUE].confidence == pytest.approx(0.7)
    assert dates[DateKind.ISSUE].provenance == "pattern:dated"
