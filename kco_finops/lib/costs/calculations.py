"""
Cost Calculations

Centralized calculation functions for cost metrics.
Keeps percentage, statistics and forecast arithmetic out of the views.
"""

import math
from datetime import datetime
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Sequence


# ==============================================================================
# Percentage Calculations
# ==============================================================================

def calculate_percentage(value: float, total: float) -> float:
    """
    Calculate percentage of total.

    Args:
        value: Part value
        total: Total value

    Returns:
        Percentage (0-100), 0 when total is not positive
    """
    if total <= 0:
        return 0.0
    return (value / total) * 100


def calculate_percentage_change(
    current: float,
    previous: float
) -> float:
    """
    Calculate percentage change between two values.

    Args:
        current: Current period value
        previous: Previous period value

    Returns:
        Percentage change (can be negative)
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0

    return ((current - previous) / previous) * 100


def calculate_driver_pct(current: float, previous: float) -> float:
    """Change of a cost driver; a driver with no previous spend counts as +100%."""
    if previous == 0:
        return 100.0
    return ((current - previous) / previous) * 100


def calculate_split_change(previous: float, current: float) -> float:
    """Change between two halves of a series, 0 when the first half has no positive spend."""
    if previous <= 0:
        return 0.0
    return ((current - previous) / previous) * 100


def calculate_efficiency_score(total_spend: float, leakage_cost: float) -> int:
    """
    Share of spend covered by commitments, as a whole percentage.

    Returns 100 when there is no positive spend.
    """
    if total_spend <= 0:
        return 100
    return int(math.floor((total_spend - leakage_cost) / total_spend * 100 + 0.5))


# ==============================================================================
# Statistics
# ==============================================================================

def mean_and_stddev(values: Sequence[float]) -> tuple[float, float]:
    """Population mean and standard deviation; (0, 0) for an empty series."""
    if not values:
        return 0.0, 0.0
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return mean, math.sqrt(variance)


@dataclass
class Predictability:
    """How steady daily spend is."""
    mean: float
    stddev: float
    coefficient_of_variation: float
    score: float
    band: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mean": self.mean,
            "stddev": self.stddev,
            "coefficientOfVariation": self.coefficient_of_variation,
            "score": self.score,
            "band": self.band,
        }


def calculate_predictability(daily_totals: Sequence[float]) -> Predictability:
    """
    Score daily spend stability from its coefficient of variation.

    score = max(0, 100 - cv); band High >= 80, Medium >= 50, else Low.
    """
    mean, stddev = mean_and_stddev(daily_totals)
    cv = (stddev / mean) * 100 if mean else 0.0
    score = max(0.0, 100.0 - cv)
    if score >= 80:
        band = "High"
    elif score >= 50:
        band = "Medium"
    else:
        band = "Low"
    return Predictability(mean=mean, stddev=stddev, coefficient_of_variation=cv, score=score, band=band)


def calculate_concentration(values: Sequence[float]) -> Dict[str, Any]:
    """
    Spend concentration over grouped totals.

    Returns:
        Dict with topShare, top3Share (percent), hhi (0-10000) and
        concentrated (top item above 50%)
    """
    positive = sorted((v for v in values if v > 0), reverse=True)
    total = sum(positive)
    if total <= 0:
        return {"topShare": 0.0, "top3Share": 0.0, "hhi": 0.0, "concentrated": False}

    shares = [v / total * 100 for v in positive]
    top_share = shares[0]
    return {
        "topShare": top_share,
        "top3Share": sum(shares[:3]),
        "hhi": sum(s ** 2 for s in shares),
        "concentrated": top_share > 50,
    }


# ==============================================================================
# Rate Calculations
# ==============================================================================

def calculate_daily_rate(total_cost: float, days: int) -> float:
    """
    Average cost per day.

    Args:
        total_cost: Cost over the period
        days: Number of days in the period

    Returns:
        Daily cost rate, 0 for an empty period
    """
    if days <= 0:
        return 0.0
    return total_cost / days


def calculate_monthly_forecast(daily_rate: float, days_in_month: int = 30) -> float:
    """Monthly forecast from a daily rate."""
    return round(daily_rate * days_in_month, 2)


def calculate_annual_forecast(monthly_forecast: float) -> float:
    """Annual forecast from a monthly forecast."""
    return round(monthly_forecast * 12, 2)


def calculate_forecasts(total_cost: float, days: int) -> Dict[str, float]:
    """
    Calculate all forecasts from the cost of an observed period.

    Returns:
        Dict with dailyRate, monthlyForecast, annualForecast
    """
    daily_rate = calculate_daily_rate(total_cost, days)
    monthly_forecast = calculate_monthly_forecast(daily_rate)
    return {
        "dailyRate": round(daily_rate, 2),
        "monthlyForecast": monthly_forecast,
        "annualForecast": calculate_annual_forecast(monthly_forecast),
    }


def split_halves(values: List[float]) -> tuple[float, float]:
    """Sums of the first and second half of a series (midpoint = floor(n / 2))."""
    mid = len(values) // 2
    return sum(values[:mid]), sum(values[mid:])


MONTH_ABBREVIATIONS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def billing_period(dates: Sequence[str]) -> Optional[str]:
    """
    "Mon YYYY" label of the latest `YYYY-MM-DD` date.

    Values that are not real calendar dates are ignored; None when no date
    is usable.
    """
    parsed = []
    for value in dates:
        try:
            parsed.append(datetime.strptime(str(value)[:10], "%Y-%m-%d"))
        except ValueError:
            continue
    if not parsed:
        return None
    latest = max(parsed)
    return f"{MONTH_ABBREVIATIONS[latest.month - 1]} {latest.year}"
