"""Tests for screen layers and pipeline."""
import math

from conftest import make_record


def test_range_screen_bounds():
    from screener.screens import RangeScreen

    screen = RangeScreen("market_cap", minimum=1e9, maximum=1e10)

    assert screen.process("AAA", {"record": make_record("AAA", market_cap=5e9)}).passed
    assert not screen.process("BBB", {"record": make_record("BBB", market_cap=5e8)}).passed
    assert not screen.process("CCC", {"record": make_record("CCC", market_cap=5e10)}).passed


def test_range_screen_missing_value_fails():
    from screener.screens import RangeScreen

    result = RangeScreen("rotce", minimum=0.1).process("AAA", {"record": make_record("AAA")})

    assert not result.passed
    assert "no rotce" in result.reasoning


def test_range_screen_infinite_leverage_fails_maximum():
    from screener.screens import RangeScreen

    record = make_record("AAA", net_debt_to_ebitda=math.inf)

    assert not RangeScreen("net_debt_to_ebitda", maximum=3.0).process("AAA", {"record": record}).passed


def test_choice_screen_is_case_insensitive():
    from screener.screens import ChoiceScreen

    screen = ChoiceScreen("exchange", ["nasdaq"])

    assert screen.process("AAA", {"record": make_record("AAA", exchange="NASDAQ")}).passed
    assert not screen.process("BBB", {"record": make_record("BBB", exchange="NYSE")}).passed


def test_layers_satisfy_protocol():
    from screener.screens import ChoiceScreen, RangeScreen, ScreenLayer

    assert isinstance(RangeScreen("score", minimum=1), ScreenLayer)
    assert isinstance(ChoiceScreen("exchange", ["NYSE"]), ScreenLayer)


def test_pipeline_stops_at_first_rejection():
    from screener.screens import ChoiceScreen, RangeScreen, ScreenPipeline

    pipeline = ScreenPipeline([
        ChoiceScreen("exchange", ["NASDAQ"]),
        RangeScreen("market_cap", minimum=1e9),
    ])

    passed, _, reasoning = pipeline.run("AAA", {"record": make_record("AAA", exchange="NYSE")})

    assert not passed
    assert "[exchange_choice]" in reasoning
    assert "[market_cap_range]" not in reasoning


def test_empty_pipeline_passes_everything():
    from screener.screens import ScreenPipeline

    records = [make_record("AAA"), make_record("BBB")]

    assert ScreenPipeline([]).filter(records) == records


def test_build_pipeline_from_params():
    from screener.screens import build_pipeline

    pipeline = build_pipeline({
        "exchange": "NYSE, NASDAQ",
        "minMarketCap": 1e9,
        "maxMarketCap": None,
        "maxNetDebtToEBITDA": 2,
        "minScore": 40,
    })
    records = [
        make_record("KEEP", market_cap=2e9, net_debt_to_ebitda=1.0, score=50.0),
        make_record("SMALL", market_cap=5e8, net_debt_to_ebitda=1.0, score=50.0),
        make_record("LEVERED", market_cap=2e9, net_debt_to_ebitda=4.0, score=50.0),
        make_record("LOWSCORE", market_cap=2e9, net_debt_to_ebitda=1.0, score=20.0),
        make_record("OTC", exchange="OTC", market_cap=2e9, net_debt_to_ebitda=1.0, score=50.0),
    ]

    assert [r.symbol for r in pipeline.filter(records)] == ["KEEP"]
    assert len(pipeline.layers) == 4


def test_build_pipeline_without_params_is_empty():
    from screener.screens import build_pipeline

    assert build_pipeline({}).layers == []
