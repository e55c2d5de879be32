import pytest

import huawei

HEADERS = ["DUID", "DU Name", "Survey", "Status"]
DATA_ROWS = [
    ["DU1", "Site A", "2024-01-01", "Open"],
    ["DU2", "Site B", "", "Open"],
]


def test_rollout_config_defaults(monkeypatch):
    monkeypatch.setenv("GOOGLE_SHEET_NAME_HWROLLOUTRNO_SETTING", "rno_settings")
    assert huawei.rollout_config("itc") == {
        "spreadsheet_id": "itc-book",
        "sheet": "ITCHIOH",
        "settings": "settings",
        "selection": "sheet_list",
    }
    assert huawei.rollout_config("rno")["settings"] == "rno_settings"
    assert huawei.rollout_config("rno")["sheet"] == "RNOHWIOH"


def test_find_row_exact_then_normalised():
    rows = [["DUID"], ["ab 1"], ["XY2"], ["XY2"]]
    assert huawei.find_row(rows, 0, "XY2") == 2
    assert huawei.find_row(rows, 0, "AB1") == 1
    assert huawei.find_row(rows, 0, " xy2 ") == 2
    assert huawei.find_row(rows, 0, "zzz") is None


def test_parse_rollout_settings():
    out = huawei.parse_rollout_settings([
        {"Column": "DU Name", "Value": "String", "Editable": "no", "Show": ""},
        {"Column": "Survey Date", "Value": "Date"},
        {"Column": "", "Value": "date"},
    ])
    assert out["columns"] == [
        {"name": "DUName", "type": "string", "show": True, "editable": False, "displayName": "DU Name"},
        {"name": "SurveyDate", "type": "date", "show": True, "editable": True, "displayName": "Survey Date"},
    ]
    assert out["summary"] == {"total": 2, "visible": 2, "editable": 1}


def test_date_columns():
    assert huawei.date_columns_from_settings([
        {"Column": "Survey Date", "Value": "date"},
        {"Column": "Remark", "Value": "textarea"},
    ]) == ["Survey Date"]
    assert huawei.itc_is_date_column("ATP Approved Date")
    assert huawei.itc_is_date_column("mos")
    assert not huawei.itc_is_date_column("Status")
    assert not huawei.itc_is_date_column("")

    is_date = huawei.rno_date_matcher(["Survey Date"])
    assert is_date("surveydate")
    assert is_date("SURVEY DATE")
    assert not is_date("Survey")


def test_plan_bulk_import_protects_filled_dates():
    updates = [
        {"DUID": "DU1", "Survey": "2024-02-02", "Status": "Closed"},
        {"duid": "DU2", "Survey": "2024-03-03", "Status": "Open", "Unknown": "x"},
        {"DUID": "DU9", "Status": "x"},
        {"Status": "y"},
    ]
    plan = huawei.plan_bulk_import("ITCHIOH", HEADERS, DATA_ROWS, updates, huawei.itc_is_date_column)
    assert plan["data"] == [
        {"range": "ITCHIOH!D2", "values": [["Closed"]]},
        {"range": "ITCHIOH!C3", "values": [["2024-03-03"]]},
    ]
    assert plan["updated"] == 2
    # DUID keys of DU1 and DU2, DU1 survey, DU2 status + unknown, DU9 whole row, row without DUID
    assert plan["skipped"] == 8
    assert plan["importedCells"] == [
        {"duid": "DU1", "column": "Status"},
        {"duid": "DU2", "column": "Survey"},
    ]


def test_plan_bulk_import_matches_columns_without_spaces():
    plan = huawei.plan_bulk_import("T", HEADERS, DATA_ROWS, [{"DUID": "DU1", "DUName": "Renamed"}],
                                   lambda h: False)
    assert plan["data"] == [{"range": "T!B2", "values": [["Renamed"]]}]
    assert plan["skipped"] == 1


def test_plan_bulk_import_needs_duid_column():
    with pytest.raises(ValueError, match="DUID column not found"):
        huawei.plan_bulk_import("T", ["Site"], [], [{"DUID": "x"}], lambda h: False)


def test_plan_cell_updates():
    rows = [["DUID", "Status", "Remark"], ["DU1", "a", ""], [" DU2 ", "b", ""]]
    plan = huawei.plan_cell_updates("RNO Sheet", rows, "duid", [
        {"rowId": "DU1", "columnId": "Status", "value": "x"},
        {"rowId": "DU2", "columnId": "remark", "value": "y"},
        {"rowId": "DU3", "columnId": "Status", "value": "z"},
        {"rowId": "DU1", "columnId": "Nope", "value": "q"},
        "DU2",
    ])
    assert plan["data"] == [
        {"range": "'RNO Sheet'!B2", "values": [["x"]]},
        {"range": "'RNO Sheet'!C3", "values": [["y"]]},
    ]
    assert plan["skipped"] == 3


def test_plan_cell_updates_unknown_identifier():
    with pytest.raises(LookupError, match="Identifier column 'Site' not found"):
        huawei.plan_cell_updates("T", [["DUID"]], "Site", [])


def test_validate_register_rows():
    good = {"DUID": "D1", "DU Name": "N", "Region": "R", "Project Code": "P"}
    assert huawei.validate_register_rows([good]) is None
    assert huawei.validate_register_rows([]) == "No rows to register"
    assert huawei.validate_register_rows([good] * 21) == "Maximum 20 rows allowed"
    assert huawei.validate_register_rows([dict(good, Region=" ")]) == "Missing required field: Region"
    assert huawei.validate_register_rows(["DU1"]) == "Missing required field: DUID"
    assert huawei.validate_register_rows([good, None]) == "Missing required field: DUID"


def test_build_register_rows_skips_leading_blank_columns():
    headers = ["", "", "DUID", "DU Name", "Region", "Project Code", "Note"]
    start, values = huawei.build_register_rows(
        headers, [{"DUID": "D1", "DU Name": "N", "region": "R", "ProjectCode": "P"}],
    )
    assert start == "C"
    assert values == [["D1", "N", "R", "P", ""]]


def test_find_duplicates():
    headers = ["", "DUID"]
    assert huawei.find_duplicates(headers, [["", "D1"], ["", ""]], [{"DUID": "D1"}, {"DUID": "D2"}]) == ["D1"]
    with pytest.raises(ValueError):
        huawei.find_duplicates(["Site"], [], [{"DUID": "D1"}])


def test_sheet_lists():
    assert huawei.parse_sheet_list_rows([["A", "Title A"], ["B"], ["", "x"]]) == [
        {"sheetName": "A", "title": "Title A"},
    ]
    assert huawei.parse_sheet_list_records([
        {"sheet_list": "S1", "title": "T1"},
        {"SheetName": "S2", "Description": "D2"},
        {"title": "no sheet"},
    ]) == [{"sheetName": "S1", "title": "T1"}, {"sheetName": "S2", "title": "D2"}]


def test_filter_by_region_is_exact():
    recs = [{"Region": "Jakarta"}, {"region": "Bandung"}, {"Region": "jakarta"}]
    assert huawei.filter_by_region(recs, "Jakarta") == [{"Region": "Jakarta"}]
    assert huawei.filter_by_region(recs, "") == recs


def test_plan_bulk_import_skips_rows_that_are_not_objects():
    plan = huawei.plan_bulk_import("T", HEADERS, DATA_ROWS, ["DU1", {"DUID": "DU1", "Status": "Done"}],
                                   lambda h: False)
    assert plan["updated"] == 1
    assert plan["skipped"] == 2
