"""
Tracked ETF universe.

TOP_50 is refreshed intraday, ALL_ETFS once a day, TRACKED_SYMBOLS feed the
dashboard's top-picks board.
"""

from typing import Dict, Iterable, List


def unique(symbols: Iterable[str]) -> List[str]:
    """De-duplicate while keeping first-seen order"""
    seen = set()
    result = []
    for sym in symbols:
        sym = sym.strip().upper()
        if sym and sym not in seen:
            seen.add(sym)
            result.append(sym)
    return result


_MOST_TRADED = [
    # broad market
    "SPY", "VOO", "IVV", "QQQ", "VTI", "IWM", "VTV", "VUG", "SPLG", "GLD",
    # technology
    "VGT", "XLK", "SOXX", "SMH", "FTEC", "WDTI",
    # healthcare
    "XLV", "VHT", "IYH",
    # financials
    "XLF", "VFH", "IYF", "KBE", "KRE",
    # dividend
    "SCHD", "VYM", "DVY", "SDY", "DGRO",
    # growth
    "JPMG", "MGK", "SCHG", "IWF", "VONG",
    # international
    "EFA", "VEA", "VWO", "IEMG", "IEFA",
    # bonds
    "TLT", "GOVT", "BND", "AGG", "SHV",
    # real estate
    "VNQ", "IYR", "XLRE",
    # sectors
    "XLY", "XLP", "VCR", "VDC", "XLU", "VPU", "XLI", "VIS", "XLB", "VAW",
    "XLE", "VDE",
    # income
    "JEPQ", "TSLY", "CONL", "NUSI",
]

_EXTENDED = [
    "VV", "MGC", "SPXL", "UPRO", "SSO", "SPXU", "SDS", "SH",
    "HACK", "CIBR", "IPAY", "ARKK", "ARKF", "ARKW", "ARKG",
    "IBB", "XBI", "FAZ", "FAS",
    "DIVB", "SMDV", "PEY", "SPHD",
    "SGOL", "IAU", "BAR", "GLDM",
    "EEM", "VXUS", "VEU", "CWI", "ACWI",
    "SHY", "TIP", "LQD", "HYG", "JNK",
    "USRT", "REM", "MORT",
    "FXG", "FXD", "IDU", "FXR",
    "USO", "UCO", "SCO", "UNG",
    "VIXY", "UVXY", "SVXY", "VXX", "UVIX",
    "TQQQ", "QLD", "UDOW", "DDM", "DOG", "PSQ",
    "DBA", "DBC", "SLV", "PPLT", "PALL", "SIVR",
    "ICLN", "PBW", "TAN", "PAVE", "BUG", "MSOS", "MJ",
    "MCHI", "FXI", "KWEB", "PGJ", "YINN", "CHAU",
    "EWZ", "EWA", "EWC", "EWW", "ECH", "EIS", "EPU",
    "EWJ", "EWH", "EWS", "EWY",
    "UUP", "UDN", "FXB", "FXE", "FXY", "FXF", "FXA", "FXC",
    "MBB", "MUB", "PFF", "PGX",
    "SCHP", "SPIP", "TFI", "SHM", "VTEB", "ICVT", "CWB",
    "AOR", "AOM", "AOA", "AOK",
    "IJR", "SCHA", "VBR", "VXF", "SLY",
    "VO", "IJH", "SCHM", "XMID",
    "IWC", "MGV", "VONE",
]

TOP_50: List[str] = unique(_MOST_TRADED)[:50]
ALL_ETFS: List[str] = unique(_MOST_TRADED + _EXTENDED)
REALTIME_SYMBOLS: List[str] = TOP_50[:20]
TRACKED_SYMBOLS: List[str] = ["VOO", "QQQ", "SCHD", "VTI", "VGT", "XLK", "XLF", "JEPQ"]

ETF_NAMES: Dict[str, str] = {
    "SPY": "SPDR S&P 500 ETF Trust",
    "VOO": "Vanguard S&P 500 ETF",
    "IVV": "iShares Core S&P 500 ETF",
    "QQQ": "Invesco QQQ Trust",
    "VTI": "Vanguard Total Stock Market ETF",
    "IWM": "iShares Russell 2000 ETF",
    "SCHD": "Schwab US Dividend Equity ETF",
    "VGT": "Vanguard Information Technology ETF",
    "XLK": "Technology Select Sector SPDR Fund",
    "XLF": "Financial Select Sector SPDR Fund",
    "XLV": "Health Care Select Sector SPDR Fund",
    "GLD": "SPDR Gold Shares",
    "TLT": "iShares 20+ Year Treasury Bond ETF",
    "BND": "Vanguard Total Bond Market ETF",
    "VNQ": "Vanguard Real Estate ETF",
    "JEPQ": "JPMorgan Nasdaq Equity Premium Income ETF",
}


def etf_name(symbol: str) -> str:
    return ETF_NAMES.get(symbol.upper(), f"{symbol.upper()} ETF")
