"""Typed view of ``<tool_call>`` payloads emitted by the assistant.

Known operations validate into their own models; anything else becomes an
``UnknownToolCall`` instead of a loose dict.
"""
from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator


class _SymbolParams(BaseModel):
    symbol: str = ""

    @field_validator("symbol")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()


class ChangeSymbol(BaseModel):
    tool: Literal["change_symbol"]
    params: _SymbolParams = Field(default_factory=_SymbolParams)


class TimeframeParams(BaseModel):
    timeframe: str = "daily"


class ChangeTimeframe(BaseModel):
    tool: Literal["change_timeframe"]
    params: TimeframeParams = Field(default_factory=TimeframeParams)


class ChartTypeParams(BaseModel):
    type: str = "area"


class ChangeChartType(BaseModel):
    tool: Literal["change_chart_type"]
    params: ChartTypeParams = Field(default_factory=ChartTypeParams)


class IndicatorParams(BaseModel):
    indicator: str = ""
    enabled: bool = True


class ToggleIndicator(BaseModel):
    tool: Literal["toggle_indicator"]
    params: IndicatorParams = Field(default_factory=IndicatorParams)


class WatchlistNameParams(BaseModel):
    name: str = ""


class CreateWatchlist(BaseModel):
    tool: Literal["create_watchlist"]
    params: WatchlistNameParams = Field(default_factory=WatchlistNameParams)


class SwitchWatchlist(BaseModel):
    tool: Literal["switch_watchlist"]
    params: WatchlistNameParams = Field(default_factory=WatchlistNameParams)


class AddToWatchlistParams(_SymbolParams):
    name: str = ""


class AddToWatchlist(BaseModel):
    tool: Literal["add_to_watchlist"]
    params: AddToWatchlistParams = Field(default_factory=AddToWatchlistParams)


class RemoveFromWatchlist(BaseModel):
    tool: Literal["remove_from_watchlist"]
    params: _SymbolParams = Field(default_factory=_SymbolParams)


class RightPanelParams(BaseModel):
    view: Literal["news", "economic"] = "news"


class SwitchRightPanel(BaseModel):
    tool: Literal["switch_right_panel"]
    params: RightPanelParams = Field(default_factory=RightPanelParams)


class LeftTabParams(BaseModel):
    tab: str = "overview"


class SwitchLeftTab(BaseModel):
    tool: Literal["switch_left_tab"]
    params: LeftTabParams = Field(default_factory=LeftTabParams)


class MarketDataParams(BaseModel):
    endpoint: str = ""
    params: dict[str, Any] = Field(default_factory=dict)


class FetchMarketData(BaseModel):
    tool: Literal["fetch_fmp_data"]
    params: MarketDataParams = Field(default_factory=MarketDataParams)


class WebSearchParams(BaseModel):
    query: str = ""


class WebSearch(BaseModel):
    tool: Literal["web_search", "tavily_search"]
    params: WebSearchParams = Field(default_factory=WebSearchParams)


class UnknownToolCall(BaseModel):
    tool: str
    params: dict[str, Any] = Field(default_factory=dict)


KnownToolCall = Annotated[
    Union[
        ChangeSymbol,
        ChangeTimeframe,
        ChangeChartType,
        ToggleIndicator,
        CreateWatchlist,
        SwitchWatchlist,
        AddToWatchlist,
        RemoveFromWatchlist,
        SwitchRightPanel,
        SwitchLeftTab,
        FetchMarketData,
        WebSearch,
    ],
    Field(discriminator="tool"),
]
ToolCall = Union[KnownToolCall, UnknownToolCall]

_known_adapter: TypeAdapter[Any] = TypeAdapter(KnownToolCall)
SERVER_SIDE_TOOLS = frozenset({"fetch_fmp_data", "web_search", "tavily_search"})


def parse_tool_call(raw: str) -> ToolCall | None:
    """Parse one tool-call block body; ``None`` when it is not usable JSON."""
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("tool"), str) or not data["tool"]:
        return None
    params = data.get("params")
    if not isinstance(params, dict):
        params = {}
    try:
        return _known_adapter.validate_python({"tool": data["tool"], "params": params})
    except ValidationError:
        return UnknownToolCall(tool=data["tool"], params=params)


def is_client_tool_call(call: ToolCall) -> bool:
    return call.tool not in SERVER_SIDE_TOOLS


def describe(call: ToolCall) -> str:
    """Short status line for a tool call, as shown after the turn completes."""
    if isinstance(call, ChangeSymbol):
        return f"Navigated to {call.params.symbol}" if call.params.symbol else "Missing symbol"
    if isinstance(call, ChangeTimeframe):
        return f"Timeframe set to {call.params.timeframe}"
    if isinstance(call, ChangeChartType):
        return f"Chart type set to {call.params.type}"
    if isinstance(call, ToggleIndicator):
        if not call.params.indicator:
            return "Missing indicator"
        state = "enabled" if call.params.enabled else "disabled"
        return f"{call.params.indicator} {state}"
    if isinstance(call, CreateWatchlist):
        return f'Created watchlist "{call.params.name}"' if call.params.name else "Missing watchlist name"
    if isinstance(call, SwitchWatchlist):
        return f'Switched to watchlist "{call.params.name}"' if call.params.name else "Missing watchlist name"
    if isinstance(call, AddToWatchlist):
        return f"Added {call.params.symbol} to watchlist" if call.params.symbol else "Missing symbol"
    if isinstance(call, RemoveFromWatchlist):
        return f"Removed {call.params.symbol} from watchlist" if call.params.symbol else "Missing symbol"
    if isinstance(call, SwitchRightPanel):
        return f"Right panel: {call.params.view}"
    if isinstance(call, SwitchLeftTab):
        return f"Left tab: {call.params.tab}"
    if isinstance(call, (FetchMarketData, WebSearch)):
        return ""
    return f"Unknown tool: {call.tool}"
