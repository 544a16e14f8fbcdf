"""
Local Insight Fallback

Deterministic Indonesian explanation of a room-temperature reading, used
when no Gemini model returns usable text. Pure: no I/O, no clock, no state.

Comfort bands (°C):
    dingin   < 18
    nyaman   18 – 26   (both edges inclusive)
    hangat   > 26 – 30 (upper edge inclusive)
    panas    > 30
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, localcontext
from enum import Enum
import math
from typing import Optional

# ── Thresholds ────────────────────────────────────────────────────────────────
COLD_BELOW = 18.0
COMFORT_MAX = 26.0
WARM_MAX = 30.0

LENGTH_LIMITED_FINISH_REASON = "MAX_TOKENS"
TRUNCATION_SUFFIX = " (catatan: respons AI penuh tidak tersedia, menampilkan ringkasan lokal)"


class ComfortBand(str, Enum):
    DINGIN = "dingin"
    NYAMAN = "nyaman"
    HANGAT = "hangat"
    PANAS = "panas"


@dataclass(frozen=True)
class BandText:
    condition: str
    advice: str


BAND_TEXT = {
    ComfortBand.DINGIN: BandText(
        condition="lebih rendah dari batas nyaman",
        advice="Pertimbangkan menutup ventilasi atau menyalakan penghangat seperlunya.",
    ),
    ComfortBand.NYAMAN: BandText(
        condition="dalam rentang ideal",
        advice="Pertahankan kondisi saat ini dan pastikan sirkulasi udara tetap baik.",
    ),
    ComfortBand.HANGAT: BandText(
        condition="sedikit lebih tinggi dari ideal",
        advice="Periksa ventilasi dan kurangi sumber panas di dalam ruangan.",
    ),
    ComfortBand.PANAS: BandText(
        condition="melampaui batas aman",
        advice="Aktifkan pendingin atau buka ventilasi untuk menurunkan suhu secepatnya.",
    ),
}


def classify(reading: float) -> ComfortBand:
    """Bucket an unrounded reading."""
    if reading < COLD_BELOW:
        return ComfortBand.DINGIN
    if reading <= COMFORT_MAX:
        return ComfortBand.NYAMAN
    if reading <= WARM_MAX:
        return ComfortBand.HANGAT
    return ComfortBand.PANAS


def format_reading(reading: float) -> str:
    """One decimal place, half-up, dropping a trailing ``.0`` (``22.0`` -> ``22``)."""
    exact = Decimal(reading)
    with localcontext() as ctx:
        # Room for every integer digit plus the one decimal place
        ctx.prec = max(ctx.prec, exact.adjusted() + 3)
        rounded = exact.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
        if rounded == rounded.to_integral_value():
            return str(int(rounded))
    return str(rounded)


def compose_local_insight(reading: float, finish_reason: Optional[str] = None) -> str:
    """
    Build the local explanation for ``reading``.

    Raises:
        ValueError: reading is not a finite number.
    """
    if not math.isfinite(reading):
        raise ValueError(f"Reading must be finite, got {reading!r}")

    band = classify(reading)
    text = BAND_TEXT[band]
    suffix = TRUNCATION_SUFFIX if finish_reason == LENGTH_LIMITED_FINISH_REASON else ""
    return (
        f"Suhu ruangan saat ini sekitar {format_reading(reading)}°C, "
        f"terasa {band.value} dan {text.condition}. {text.advice}{suffix}"
    )
