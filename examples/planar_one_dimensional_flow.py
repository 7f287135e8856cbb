"""
Planar one-dimensional flow example.

A grounded ice sheet on a seaward-sloping bed feeds a floating ice
shelf that calves at the eastern domain edge. The example diagnoses the
initial velocity, runs the thickness forward in time with periodic HDF5
output and collates the output into a single NetCDF file.

Usage:
    python planar_one_dimensional_flow.py --output output --end-time 100 --plot
"""

import argparse
import logging

from slide import (Grid, InitialConditions, Model, OutputParams, Params, Simulation,
                   TimesteppingParams, collate_snapshots, run_simulation, setup_logging,
                   update_state)


def bed(x, y):
    """Bed elevation (m) sloping linearly below sea level."""
    return 720.0 - 778.5 * x / 750e3


def main():
    parser = argparse.ArgumentParser(description="Planar one-dimensional flow")
    parser.add_argument("--output", default="output", help="Output directory")
    parser.add_argument("--dt", type=float, default=0.5, help="Time step (years)")
    parser.add_argument("--end-time", type=float, default=100.0, help="End time (years)")
    parser.add_argument("--output-freq", type=float, default=10.0, help="Output interval (years)")
    parser.add_argument("--plot", action="store_true", help="Plot the final state")
    parser.add_argument("--verbose", action="store_true", help="Log Picard iterations")
    args = parser.parse_args()

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    grid = Grid(nx=150, ny=2, dx=12000.0, dy=12000.0)
    model = Model(
        grid=grid,
        bed_elevation=bed,
        params=Params(accumulation_rate=0.3),
        initial_conditions=InitialConditions(initial_thickness=300.0),
    )
    print(f"Grid: {grid.nx} x {grid.ny}, dx = {grid.dx:.0f} m")

    # Diagnose the initial state
    info = update_state(model)
    gh = model.fields.gh
    print(f"Initial solve: {info.iterations} iterations, "
          f"max speed {gh.speed.max():.1f} m/yr, "
          f"grounding line at x = {grid.xh[gh.grounded[:, 0]].max() / 1e3:.0f} km")

    simulation = Simulation(
        model,
        TimesteppingParams(dt=args.dt, end_time=args.end_time),
        OutputParams(
            outputs={"h": "h", "s": "s", "u": "gh.u", "grounded": "grounded"},
            output_freq=args.output_freq,
            output_path=args.output,
        ),
    )
    run_simulation(simulation)
    print(f"Finished at t = {simulation.t:g} yr after {simulation.step} steps, "
          f"{len(simulation.output_files)} output files")

    ds = collate_snapshots(args.output, nc_path=f"{args.output}/planar_one_dimensional_flow.nc")
    print(ds)

    if args.plot:
        import matplotlib.pyplot as plt

        x_km = grid.xh / 1e3
        fig, (ax_geom, ax_vel) = plt.subplots(2, 1, sharex=True, figsize=(8, 6))
        ax_geom.plot(x_km, gh.b[:, 0], "k", label="bed")
        ax_geom.plot(x_km, gh.s[:, 0], "b", label="surface")
        ax_geom.plot(x_km, gh.base[:, 0], "b--", label="base")
        ax_geom.axhline(model.params.sea_level, color="c", lw=0.5)
        ax_geom.set_ylabel("elevation (m)")
        ax_geom.legend()

        for t in ds.time.values:
            ax_vel.plot(x_km, ds["u"].sel(time=t).values[:, 0], lw=0.8, label=f"{t:g} yr")
        ax_vel.set_xlabel("x (km)")
        ax_vel.set_ylabel("u (m/yr)")
        ax_vel.legend(fontsize="small", ncol=2)

        fig.tight_layout()
        fig.savefig(f"{args.output}/planar_one_dimensional_flow.png", dpi=150)
        plt.show()

    print("Done!")


if __name__ == "__main__":
    main()
