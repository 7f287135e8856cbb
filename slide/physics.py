"""
Constitutive laws and flotation.

Rheology and friction are strategy objects: anything with a
``viscosity(strain_rate_sq)`` or ``drag(speed)`` method can be plugged
into Params and the velocity solver picks it up unchanged.
"""

import numpy as np


# Physical constants
RHO_ICE = 918.0  # kg/m^3
RHO_OCEAN = 1028.0  # kg/m^3
G = 9.81  # m/s^2


class Rheology:
    """Base class for flow laws: maps squared effective strain rate to viscosity."""

    def viscosity(self, strain_rate_sq):
        raise NotImplementedError


class Friction:
    """Base class for sliding laws: maps basal speed to a drag coefficient."""

    def drag(self, speed):
        raise NotImplementedError


class GlenFlowLaw(Rheology):
    """
    Glen's flow law with a regularized effective strain rate.

    eta = 0.5 * A^(-1/n) * (eps_e^2 + eps_reg^2)^((1-n)/(2n))

    Parameters
    ----------
    A : float
        Rate factor (Pa^-n yr^-1)
    n : float
        Flow law exponent (default 3.0)
    eps_reg : float
        Strain rate regularization (yr^-1, default 1e-5)
    """

    def __init__(self, A, n=3.0, eps_reg=1e-5):
        if A <= 0 or n <= 0:
            raise ValueError(f"GlenFlowLaw needs A > 0 and n > 0, got A={A}, n={n}")
        self.A = float(A)
        self.n = float(n)
        self.eps_reg = float(eps_reg)

    def __repr__(self):
        return f"GlenFlowLaw(A={self.A}, n={self.n}, eps_reg={self.eps_reg})"

    @property
    def B(self):
        """Ice hardness A^(-1/n)."""
        return self.A ** (-1.0 / self.n)

    def viscosity(self, strain_rate_sq):
        exponent = (1.0 - self.n) / (2.0 * self.n)
        return 0.5 * self.B * (strain_rate_sq + self.eps_reg**2) ** exponent


class WeertmanFriction(Friction):
    """
    Weertman power-law sliding, tau_b = C |u|^(1/m - 1) u.

    Parameters
    ----------
    C : float
        Friction coefficient (Pa (m/yr)^(-1/m))
    m : float
        Sliding exponent (default 3.0; m = 1 is linear)
    u_reg : float
        Speed regularization (m/yr, default 1e-5)
    """

    def __init__(self, C, m=3.0, u_reg=1e-5):
        if C < 0 or m <= 0:
            raise ValueError(f"WeertmanFriction needs C >= 0 and m > 0, got C={C}, m={m}")
        self.C = float(C)
        self.m = float(m)
        self.u_reg = float(u_reg)

    def __repr__(self):
        return f"WeertmanFriction(C={self.C}, m={self.m}, u_reg={self.u_reg})"

    def drag(self, speed):
        exponent = 0.5 * (1.0 / self.m - 1.0)
        return self.C * (speed**2 + self.u_reg**2) ** exponent


def flotation_thickness(b, params):
    """Thickness at which ice on bed b would just float."""
    return (params.density_ocean / params.density_ice) * (params.sea_level - b)


def flotation_mask(h, b, params):
    """Grounded (True) where h reaches flotation thickness; floating elsewhere."""
    return h >= flotation_thickness(b, params)


def height_above_flotation(h, b, params):
    return h - np.maximum(flotation_thickness(b, params), 0.0)


def surface_elevation(h, b, grounded, params):
    """
    Ice surface elevation.

    s = b + h where grounded, s = sea_level + h (1 - rho_ice/rho_ocean)
    where floating.
    """
    floating_surface = params.sea_level + h * (1.0 - params.density_ratio)
    return np.where(grounded, b + h, floating_surface)


def front_pressure(h, base, params):
    """
    Depth-integrated hydrostatic pressure imbalance at an ice front.

    P = 0.5 rho_i g h^2 - 0.5 rho_o g d^2, with d the submerged depth.
    """
    d = np.clip(params.sea_level - base, 0.0, h)
    return 0.5 * params.gravity * (params.density_ice * h**2
                                   - params.density_ocean * d**2)


def update_geometry(gh, params):
    """
    Refresh the derived geometry of an HGridFields group in place.

    Recomputes the flotation mask, surface and base elevation, the ice mask
    and the height above flotation from the current thickness and bed.
    """
    gh.grounded[...] = flotation_mask(gh.h, gh.b, params)
    gh.s[...] = surface_elevation(gh.h, gh.b, gh.grounded, params)
    gh.base[...] = gh.s - gh.h
    gh.ice[...] = gh.h > 0.0
    gh.haf[...] = height_above_flotation(gh.h, gh.b, params)
