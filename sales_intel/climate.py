"""
US region, season, and lawn-care climate lookups used by the stages.

Regions come in two vocabularies: geo enrichment uses the four census
regions (Northeast / Midwest / South / West); the season logic also
understands the finer Southeast / Southwest split.
"""

from typing import Dict, Optional

STATE_TO_REGION = {
    **{s: "Northeast" for s in ("ME", "NH", "VT", "MA", "RI", "CT", "NY", "NJ", "PA")},
    **{s: "Midwest" for s in ("OH", "MI", "IN", "IL", "WI", "MN", "IA", "MO", "ND", "SD", "NE", "KS")},
    **{s: "South" for s in ("DE", "MD", "DC", "VA", "WV", "NC", "SC", "GA", "FL", "KY",
                            "TN", "AL", "MS", "AR", "LA", "OK", "TX")},
    **{s: "West" for s in ("MT", "ID", "WY", "CO", "NM", "AZ", "UT", "NV", "WA", "OR", "CA", "AK", "HI")},
}

# Finer split used when geo enrichment has no region
_SOUTHWEST = ("TX", "OK", "NM", "AZ")
_SOUTHEAST = ("DE", "MD", "VA", "WV", "NC", "SC", "GA", "FL", "KY", "TN", "AL", "MS", "AR", "LA")

US_COUNTRY_NAMES = ("United States", "USA", "US")

NORTHERN_REGIONS = ("Northeast", "Midwest", "West")
SOUTHERN_REGIONS = ("South", "Southeast", "Southwest")


def region_for_state(state: Optional[str], country: Optional[str] = None) -> str:
    """Census region for a US state abbreviation; Unknown outside the US."""
    if country and country not in US_COUNTRY_NAMES:
        return "Unknown"
    return STATE_TO_REGION.get((state or "").upper(), "Unknown")


def determine_region(state: Optional[str]) -> str:
    code = (state or "").upper()
    if code in _SOUTHWEST:
        return "Southwest"
    if code in _SOUTHEAST:
        return "Southeast"
    region = STATE_TO_REGION.get(code)
    return region if region and region != "South" else "Unknown"


def determine_season(month: int, region: Optional[str]) -> str:
    """Season for a 0-indexed month (0 = January) in a region."""
    if region in NORTHERN_REGIONS:
        if 2 <= month <= 4:
            return "Spring"
        if 5 <= month <= 7:
            return "Summer"
        if 8 <= month <= 10:
            return "Fall"
        return "Winter"
    if region in SOUTHERN_REGIONS:
        if 2 <= month <= 5:
            return "Spring"
        if 6 <= month <= 8:
            return "Summer"
        if 9 <= month <= 11:
            return "Fall"
        return "Winter"
    return "Spring"


# zone, mowing weeks, growing season, snow potential, snow weeks, bundle timing
_CLIMATE_ROWS = {
    "ME": ("Northern (Cold)", 20, "May - September", "High (60-80 inches/year)", 20, "Late July - August"),
    "NH": ("Northern (Cold)", 20, "May - September", "High (60-80 inches/year)", 20, "Late July - August"),
    "VT": ("Northern (Cold)", 20, "May - September", "High (70-90 inches/year)", 22, "Late July - August"),
    "MN": ("Northern (Cold)", 22, "April - October", "High (45-60 inches/year)", 18, "August - September"),
    "WI": ("Northern (Cold)", 23, "April - October", "High (40-50 inches/year)", 18, "August - September"),
    "MI": ("Northern (Moderate)", 24, "April - October", "High (30-60 inches/year)", 16, "August - September"),
    "NY": ("Northern (Moderate)", 25, "April - October", "Moderate to High (25-80 inches/year)", 15, "August - September"),
    "MA": ("Northern (Moderate)", 26, "April - October", "Moderate (40-50 inches/year)", 14, "August - September"),
    "CT": ("Northern (Moderate)", 26, "April - October", "Moderate (30-40 inches/year)", 13, "August - September"),
    "RI": ("Northern (Moderate)", 26, "April - October", "Moderate (30-40 inches/year)", 13, "August - September"),
    "PA": ("Northern (Moderate)", 27, "April - October", "Moderate (20-40 inches/year)", 12, "August - September"),
    "IL": ("Midwest (Moderate)", 27, "April - October", "Moderate (20-35 inches/year)", 12, "August - September"),
    "IN": ("Midwest (Moderate)", 28, "April - October", "Low to Moderate (15-25 inches/year)", 10, "August - September"),
    "OH": ("Midwest (Moderate)", 28, "April - October", "Moderate (20-30 inches/year)", 11, "August - September"),
    "IA": ("Midwest (Moderate)", 27, "April - October", "Moderate (25-35 inches/year)", 13, "August - September"),
    "MO": ("Midwest (Moderate)", 30, "March - November", "Low (10-20 inches/year)", 8, "September - October"),
    "MD": ("Mid-Atlantic", 30, "March - November", "Low to Moderate (10-20 inches/year)", 8, "September - October"),
    "DE": ("Mid-Atlantic", 30, "March - November", "Low (5-15 inches/year)", 6, "September - October"),
    "NJ": ("Mid-Atlantic", 28, "April - November", "Moderate (20-30 inches/year)", 11, "August - September"),
    "WV": ("Mid-Atlantic (Elevated)", 28, "April - October", "Moderate (20-40 inches/year)", 13, "August - September"),
    "VA": ("Mid-Atlantic (Mild)", 32, "March - November", "Low (5-15 inches/year)", 5, "September - October"),
    "NC": ("Southeast (Moderate)", 35, "March - November", "Minimal (2-5 inches/year)", 3, "October - November"),
    "TN": ("Southeast (Moderate)", 32, "March - November", "Low (2-8 inches/year)", 4, "September - October"),
    "KY": ("Southeast (Moderate)", 30, "March - November", "Low to Moderate (10-20 inches/year)", 8, "August - September"),
    "SC": ("Southeast (Warm)", 38, "March - November", "Minimal (0-2 inches/year)", 0, "Year-round approach"),
    "GA": ("Southeast (Warm)", 38, "March - November", "Minimal (0-3 inches/year)", 0, "Year-round approach"),
    "AL": ("Southeast (Warm)", 40, "March - November", "None", 0, "Year-round approach"),
    "MS": ("Southeast (Warm)", 40, "March - November", "None", 0, "Year-round approach"),
    "LA": ("Southeast (Subtropical)", 44, "Year-round", "None", 0, "Year-round approach"),
    "FL": ("Subtropical/Tropical", 52, "Year-round", "None", 0, "Year-round approach"),
    "TX": ("Southwest (Varied)", 42, "March - November", "None to Minimal", 0, "Year-round approach"),
    "OK": ("Central Plains", 32, "March - November", "Low (5-10 inches/year)", 5, "September - October"),
    "AR": ("Southeast (Moderate)", 36, "March - November", "Low (2-5 inches/year)", 3, "September - October"),
    "NM": ("Southwest (Arid)", 36, "March - November", "Low (5-15 inches/year)", 4, "September - October"),
    "AZ": ("Southwest (Desert)", 48, "Year-round (varies by elevation)", "None (lowlands)", 0, "Year-round approach"),
    "CA": ("West (Mediterranean)", 48, "Year-round (varies by region)", "None (coastal/valley)", 0, "Year-round approach"),
    "NV": ("West (Desert/Mountain)", 40, "March - November", "Low to Moderate (varies)", 5, "September - October"),
    "UT": ("West (Mountain)", 30, "April - October", "Moderate to High (30-60 inches/year)", 15, "August - September"),
    "CO": ("West (Mountain)", 28, "April - October", "Moderate to High (40-80 inches/year)", 18, "August - September"),
    "WY": ("West (Mountain)", 24, "May - September", "High (50-100 inches/year)", 20, "July - August"),
    "MT": ("West (Mountain)", 22, "May - September", "Moderate to High (30-70 inches/year)", 18, "July - August"),
    "ID": ("West (Mountain)", 26, "April - October", "Moderate (20-40 inches/year)", 14, "August - September"),
    "WA": ("West (Pacific)", 40, "March - November", "Low (West) / High (East & Mountains)", 8, "September - October"),
    "OR": ("West (Pacific)", 38, "March - November", "Low (West) / Moderate (East)", 6, "September - October"),
    "ND": ("Northern Plains", 20, "May - September", "High (40-50 inches/year)", 22, "July - August"),
    "SD": ("Northern Plains", 22, "April - September", "Moderate to High (30-50 inches/year)", 20, "July - August"),
    "NE": ("Central Plains", 28, "April - October", "Moderate (20-30 inches/year)", 13, "August - September"),
    "KS": ("Central Plains", 32, "March - November", "Low to Moderate (10-20 inches/year)", 8, "September - October"),
    "AK": ("Subarctic/Arctic", 16, "June - August", "Very High (50-200+ inches/year)", 32, "June - July"),
    "HI": ("Tropical", 52, "Year-round", "None", 0, "Year-round approach"),
}
_DEFAULT_ROW = ("Temperate (Estimated)", 30, "March - November", "Unknown - verify locally", 8, "August - September")


def climate_info(state: Optional[str]) -> Dict[str, object]:
    zone, weeks, growing, snow, snow_weeks, bundle = _CLIMATE_ROWS.get((state or "").upper(), _DEFAULT_ROW)
    return {
        "zone": zone,
        "mowing_weeks": weeks,
        "growing_season": growing,
        "snow_potential": snow,
        "snow_weeks": snow_weeks,
        "bundle_timing": bundle,
    }


def seasonal_opportunity(month: int, info: Dict[str, object]) -> str:
    """Sales focus for a 1-indexed month."""
    if 3 <= month <= 5:
        return ("Spring cleanup, aeration, overseeding, fertilization program kickoff, "
                "irrigation system startup")
    if 6 <= month <= 8:
        return ("Peak mowing season - weekly service contracts, irrigation optimization, "
                "drought management, summer fertilization")
    if 9 <= month <= 11:
        return "Fall aeration/overseeding, leaf removal programs, winterization, snow removal contract sales"
    if info.get("snow_potential") != "None":
        return "Active snow removal services, de-icing, winter damage assessment, spring contract sales"
    return "Winter planning, equipment maintenance, spring contract pre-sales, dormant season pruning"
