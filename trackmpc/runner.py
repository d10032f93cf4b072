"""
Closed-loop simulation runner.

Drives a RecedingHorizonController around a generated track with a
kinematic plant standing in for the vehicle simulator. Commands take effect
only after the configured actuation delay, so the latency compensation is
exercised the same way the real simulator exercises it.
"""

from collections import deque
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from trackmpc.controller import RecedingHorizonController
from trackmpc.dynamics import kinematic_step
from trackmpc.logging import LOG_INFO, LOG_WARN
from trackmpc.telemetry import TelemetryHandler, encode_telemetry, parse_frame
from trackmpc.track import Track
from trackmpc.types import ControlCommand, TelemetryMessage


@dataclass
class PlantState:
    """World-frame pose and speed of the simulated vehicle."""
    x: float = 0.0
    y: float = 0.0
    psi: float = 0.0
    v: float = 0.0


class VehiclePlant:
    """
    Kinematic vehicle with delayed actuation.

    Steering arrives normalized to [-1, 1] and is scaled by the steering
    limit; throttle is applied directly as acceleration.
    """

    def __init__(
        self,
        lf: float,
        max_steering: float,
        delay: float = 0.1,
        substep: float = 0.02,
        initial: Optional[PlantState] = None,
    ):
        self.lf = lf
        self.max_steering = max_steering
        self.delay = delay
        self.substep = substep
        self.state = initial or PlantState()
        self.time = 0.0

        self.steering = 0.0
        self.throttle = 0.0
        self._pending: deque = deque()

    def send(self, command: ControlCommand) -> None:
        """Queue a command; it is applied ``delay`` seconds from now."""
        self._pending.append((self.time + self.delay, command.steering, command.throttle))

    def advance(self, duration: float) -> PlantState:
        """Integrate the plant for ``duration`` seconds."""
        end = self.time + duration
        while self.time < end - 1e-12:
            self._activate_due()
            dt = min(self.substep, end - self.time)
            s = self.state
            nxt = kinematic_step(
                [s.x, s.y, s.psi, s.v, 0.0, 0.0],
                [self.steering * self.max_steering, self.throttle],
                dt,
                self.lf,
            )
            self.state = PlantState(x=float(nxt[0]), y=float(nxt[1]),
                                    psi=float(nxt[2]), v=max(float(nxt[3]), 0.0))
            self.time += dt
        self._activate_due()
        return self.state

    def _activate_due(self) -> None:
        while self._pending and self._pending[0][0] <= self.time + 1e-12:
            _, self.steering, self.throttle = self._pending.popleft()


def initial_state_for(track: Track, speed: float = 0.0, offset: float = 0.0) -> PlantState:
    """Start at the first waypoint facing along the track, shifted left by ``offset``."""
    heading = track.heading_at(0)
    return PlantState(
        x=float(track.x[0] - offset * np.sin(heading)),
        y=float(track.y[0] + offset * np.cos(heading)),
        psi=heading,
        v=speed,
    )


def run_simulation(
    controller: RecedingHorizonController,
    track: Track,
    max_steps: int = 200,
    period: Optional[float] = None,
    initial_speed: float = 0.0,
    lateral_offset: float = 0.0,
    lookahead: int = 6,
    record_frames: bool = False,
) -> Dict:
    """
    Run the controller against the plant until the track ends or max steps.

    Args:
        controller: Configured controller (its latency sets the plant delay)
        track: World-frame waypoints
        max_steps: Maximum number of control cycles
        period: Seconds between telemetry events (default: horizon timestep)
        initial_speed: Starting speed
        lateral_offset: Starting offset to the left of the track
        lookahead: Waypoints sent per telemetry event
        record_frames: Route every cycle through the telemetry codec and
            keep the inbound frames

    Returns:
        Dictionary with trajectory, commands and statistics
    """
    config = controller.config
    if period is None:
        period = config.horizon.timestep

    plant = VehiclePlant(
        lf=config.horizon.lf,
        max_steering=config.limits.max_steering,
        delay=config.latency.delay,
        initial=initial_state_for(track, initial_speed, lateral_offset),
    )
    handler = TelemetryHandler(controller, reply_delay=0.0) if record_frames else None

    trajectory: List[tuple] = []
    commands: List[tuple] = []
    deviation: List[float] = []
    frames: List[str] = []
    failures = 0

    LOG_INFO(f"Starting simulation on {len(track)} waypoints, up to {max_steps} cycles")

    for step in range(max_steps):
        s = plant.state
        if track.at_end(s.x, s.y, margin=lookahead):
            LOG_INFO(f"Reached end of track at cycle {step}")
            break

        ptsx, ptsy = track.lookahead(s.x, s.y, count=lookahead)
        message = TelemetryMessage(
            ptsx=ptsx, ptsy=ptsy, x=s.x, y=s.y, psi=s.psi, speed=s.v,
            steering_angle=plant.steering, throttle=plant.throttle,
        )

        if handler is not None:
            frame = encode_telemetry(message)
            frames.append(frame)
            reply = handler.handle(frame)
            command = _command_from_reply(reply, controller.consecutive_failures > 0)
        else:
            command = controller.step(message)

        if command.fallback:
            failures += 1

        plant.send(command)
        plant.advance(period)

        trajectory.append((s.x, s.y, s.psi, s.v))
        commands.append((command.steering, command.throttle))
        deviation.append(track.distance_to(s.x, s.y))

        if step % 20 == 0:
            LOG_INFO(f"Cycle {step}: position=({s.x:.2f}, {s.y:.2f}), speed={s.v:.2f}, "
                     f"deviation={deviation[-1]:.3f}")

    if failures:
        LOG_WARN(f"{failures} cycles ended in a fallback command")

    result = {
        "trajectory": trajectory,
        "commands": commands,
        "deviation": deviation,
        "failures": failures,
        "steps": len(trajectory),
        "max_deviation": float(max(deviation)) if deviation else 0.0,
        "mean_deviation": float(np.mean(deviation)) if deviation else 0.0,
        "statistics": controller.get_statistics(),
    }
    if record_frames:
        result["frames"] = frames
    return result


def _command_from_reply(reply: Optional[str], fallback: bool) -> ControlCommand:
    """Rebuild the command carried by a steer frame."""
    event = parse_frame(reply) if reply else None
    if event is None or event.payload is None or event.name != "steer":
        return ControlCommand(steering=0.0, throttle=0.0, fallback=True)
    payload = event.payload
    return ControlCommand(
        steering=float(payload["steering_angle"]),
        throttle=float(payload["throttle"]),
        mpc_x=list(payload.get("mpc_x", [])),
        mpc_y=list(payload.get("mpc_y", [])),
        next_x=list(payload.get("next_x", [])),
        next_y=list(payload.get("next_y", [])),
        fallback=fallback,
    )
