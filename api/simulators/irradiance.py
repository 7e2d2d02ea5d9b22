"""Solar position and clear-sky irradiance model.

Pure functions used by the digital twin to estimate how much power the plant
*should* be producing, so that the performance ratio has a denominator.

Model
-----
1.  **Solar geometry**: Cooper's declination, a fixed-UTC solar noon and
    the hour angle feed the standard spherical-trigonometry altitude:

        sin h = sin φ · sin δ + cos φ · cos δ · cos ω

2.  **Clear-sky GHI**: extraterrestrial irradiance with an orbital
    eccentricity correction, attenuated by a Hottel-type transmittance
    polynomial in |latitude| and the Kasten–Young air mass:

        GHI = I0 · (a0 + a1 · exp(−k · AM)) · sin h

3.  **Cloud attenuation**: linear; full overcast leaves ~25 % (diffuse).

4.  **Temperature derating**: NOCT cell-temperature rise and a linear
    power coefficient referenced to 25 °C.

Nothing here raises: out-of-domain inputs are clamped and night is signalled
by sentinels (0 W/m² GHI, ``math.inf`` air mass).
"""

from __future__ import annotations

import math
from datetime import datetime

from lib.constants import (
    DEFAULT_NOCT,
    DEFAULT_SYSTEM_LOSSES,
    DEFAULT_TEMP_COEFFICIENT,
    G_STC,
    SOLAR_CONSTANT,
    T_STC,
)
from lib.time_util import ensure_utc

_DAYS_IN_YEAR = 365.0
_NOCT_REFERENCE_AMBIENT = 20.0  # °C
_NOCT_REFERENCE_IRRADIANCE = 800.0  # W/m²
_OVERCAST_TRANSMISSION = 0.25


# ---------------------------------------------------------------------------
# Solar geometry
# ---------------------------------------------------------------------------


def day_of_year(ts: datetime) -> int:
    """Return the 1-based day of the year (1 = 1 January)."""
    return ts.timetuple().tm_yday


def solar_declination_deg(day: int) -> float:
    """Angle between the sun's rays and the equatorial plane (Cooper, 1969)."""
    return 23.45 * math.sin(math.radians((360.0 / _DAYS_IN_YEAR) * (day - 81)))


def equation_of_time_min(day: int) -> float:
    """Equation of time in minutes (orbital eccentricity + axial tilt)."""
    b = math.radians((360.0 / _DAYS_IN_YEAR) * (day - 81))
    return 9.87 * math.sin(2 * b) - 7.53 * math.cos(b) - 1.5 * math.sin(b)


def solar_noon_hours(longitude: float, timezone_hours: float = 0.0) -> float:
    """Solar noon in decimal hours of the given zone (UTC by default)."""
    return 12.0 + (timezone_hours * 15.0 - longitude) / 15.0


def hour_angle_deg(hour: float, solar_noon: float) -> float:
    """Hour angle: negative before solar noon, 15° per hour."""
    return 15.0 * (hour - solar_noon)


def solar_altitude_deg(latitude: float, declination: float, hour_angle: float) -> float:
    lat = math.radians(latitude)
    dec = math.radians(declination)
    omega = math.radians(hour_angle)

    sin_altitude = math.sin(lat) * math.sin(dec) + math.cos(lat) * math.cos(dec) * math.cos(omega)

    # Floating-point drift can push the argument just outside [-1, 1].
    return math.degrees(math.asin(max(-1.0, min(1.0, sin_altitude))))


def air_mass(altitude_deg: float) -> float:
    """Relative optical air mass (Kasten & Young, 1989).

    Returns ``math.inf`` when the sun is at or below the horizon; callers
    must treat that as night rather than feed it into further arithmetic.
    """
    if altitude_deg <= 0:
        return math.inf
    return 1.0 / (
        math.sin(math.radians(altitude_deg))
        + 0.50572 * math.pow(6.07995 + altitude_deg, -1.6364)
    )


# ---------------------------------------------------------------------------
# Irradiance
# ---------------------------------------------------------------------------


def clear_sky_ghi(latitude: float, longitude: float, timestamp: datetime) -> float:
    """Clear-sky global horizontal irradiance (W/m²) at *timestamp*.

    *timestamp* is interpreted in UTC (naive values are assumed to be UTC),
    matching the fixed-UTC solar noon.

    Returns:
        0.0 at night, otherwise a non-negative irradiance.
    """
    ts = ensure_utc(timestamp)
    day = day_of_year(ts)
    hour = ts.hour + ts.minute / 60.0

    declination = solar_declination_deg(day)
    noon = solar_noon_hours(longitude)
    altitude = solar_altitude_deg(latitude, declination, hour_angle_deg(hour, noon))

    if altitude <= 0:
        return 0.0

    am = air_mass(altitude)

    orbital_factor = 1.0 + 0.033 * math.cos(math.radians((360.0 / _DAYS_IN_YEAR) * day))
    extraterrestrial = SOLAR_CONSTANT * orbital_factor

    abs_lat = abs(latitude) / 20.0
    a0 = 0.4237 - 0.00821 * (6.0 - abs_lat) ** 2
    a1 = 0.5055 + 0.00595 * (6.5 - abs_lat) ** 2
    k = 0.2711 + 0.01858 * (2.5 - abs_lat) ** 2
    transmittance = a0 + a1 * math.exp(-k * am)

    dni = extraterrestrial * transmittance
    return max(0.0, dni * math.sin(math.radians(altitude)))


def cloud_attenuated_ghi(clear_sky: float, cloud_cover_pct: float) -> float:
    cover = max(0.0, min(100.0, cloud_cover_pct))
    return clear_sky * (1.0 - (cover / 100.0) * (1.0 - _OVERCAST_TRANSMISSION))


# ---------------------------------------------------------------------------
# Temperature and power
# ---------------------------------------------------------------------------


def cell_temperature(ambient_c: float, irradiance: float, noct: float = DEFAULT_NOCT) -> float:
    """Cell temperature from the simplified NOCT model.

    NOCT is specified at 800 W/m², 20 °C ambient and 1 m/s wind, so the
    rise above ambient scales linearly with irradiance from that point.
    """
    rise = ((noct - _NOCT_REFERENCE_AMBIENT) / _NOCT_REFERENCE_IRRADIANCE) * irradiance
    return ambient_c + rise


def temperature_loss_fraction(cell_temp_c: float, temp_coefficient: float = DEFAULT_TEMP_COEFFICIENT) -> float:
    """Fraction of power lost to heat, clamped to [0, 1].

    Cells colder than the 25 °C reference report no loss rather than a gain.
    """
    loss = (cell_temp_c - T_STC) * abs(temp_coefficient)
    return max(0.0, min(1.0, loss))


def expected_power_kw(
    capacity_kwp: float,
    irradiance: float,
    cell_temp_c: float,
    system_loss_fraction: float = DEFAULT_SYSTEM_LOSSES,
) -> float:
    temp_loss = temperature_loss_fraction(cell_temp_c)
    power = capacity_kwp * (irradiance / G_STC) * (1.0 - temp_loss) * (1.0 - system_loss_fraction)
    return max(0.0, power)
