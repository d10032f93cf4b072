"""
Plots of closed-loop simulation runs.
"""

from pathlib import Path
from typing import Dict, Optional, Union

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402

from trackmpc.track import Track  # noqa: E402


def plot_run(result: Dict, track: Track, path: Optional[Union[str, Path]] = None, title: str = ""):
    """
    Plot the driven path over the track, plus the commands over time.

    Args:
        result: Output of ``run_simulation``
        track: Track the run was driven on
        path: Save the figure here if given
        title: Figure title

    Returns:
        The matplotlib figure
    """
    fig, (ax_path, ax_cmd) = plt.subplots(1, 2, figsize=(14, 6))
    fig.suptitle(title or "Path tracking run")

    ax_path.plot(track.x, track.y, "k--", linewidth=1, label="Track")
    if result["trajectory"]:
        traj = np.asarray(result["trajectory"])
        ax_path.plot(traj[:, 0], traj[:, 1], "b-", linewidth=2, label="Vehicle")
        ax_path.plot(traj[0, 0], traj[0, 1], "go", markersize=8, label="Start")
    ax_path.set_xlabel("X Position (m)")
    ax_path.set_ylabel("Y Position (m)")
    ax_path.set_aspect("equal")
    ax_path.grid(True, alpha=0.3)
    ax_path.legend(fontsize=8)

    if result["commands"]:
        cmds = np.asarray(result["commands"])
        cycles = np.arange(len(cmds))
        ax_cmd.plot(cycles, cmds[:, 0], label="Steering (normalized)")
        ax_cmd.plot(cycles, cmds[:, 1], label="Throttle")
        ax_cmd.plot(cycles, result["deviation"], label="Lateral deviation")
    ax_cmd.set_xlabel("Cycle")
    ax_cmd.grid(True, alpha=0.3)
    ax_cmd.legend(fontsize=8)

    fig.tight_layout()
    if path is not None:
        fig.savefig(path, dpi=120)
        plt.close(fig)
    return fig
