"""Simulation clock shared by the solid, fluid and coupled solvers."""


class Time:
    """
    Fixed-step simulation clock.

    Parameters
    ----------
    end : float
        End time of the simulation.
    delta_t : float
        Time step size.
    output_interval : int
        Write output every ``output_interval`` steps (0 disables).
    refinement_interval : int
        Adapt the mesh every ``refinement_interval`` steps (0 disables).
    save_interval : int
        Save a restart snapshot every ``save_interval`` steps (0 disables).
    """

    def __init__(
        self,
        end: float,
        delta_t: float,
        output_interval: int = 1,
        refinement_interval: int = 0,
        save_interval: int = 0,
    ):
        if delta_t <= 0:
            raise ValueError(f"delta_t must be positive: {delta_t}")
        if end < 0:
            raise ValueError(f"end time must be non-negative: {end}")
        self._end = float(end)
        self._delta_t = float(delta_t)
        self.output_interval = int(output_interval)
        self.refinement_interval = int(refinement_interval)
        self.save_interval = int(save_interval)
        self._timestep = 0
        self._current = 0.0

    def current(self) -> float:
        return self._current

    def end(self) -> float:
        return self._end

    def get_delta_t(self) -> float:
        return self._delta_t

    def get_timestep(self) -> int:
        return self._timestep

    def increment(self) -> None:
        self._current += self._delta_t
        self._timestep += 1

    def reset(self, current: float = 0.0, timestep: int = 0) -> None:
        """Set the clock, e.g. when restarting from a snapshot."""
        self._current = float(current)
        self._timestep = int(timestep)

    @staticmethod
    def _hits(step: int, interval: int) -> bool:
        return interval > 0 and step % interval == 0

    def time_to_output(self) -> bool:
        return self._hits(self._timestep, self.output_interval)

    def time_to_refine(self) -> bool:
        return self._hits(self._timestep, self.refinement_interval)

    def time_to_save(self) -> bool:
        return self._hits(self._timestep, self.save_interval)

    def __repr__(self):
        return f"<Time step={self._timestep} t={self._current:.6g}/{self._end:.6g} dt={self._delta_t:.6g}>"
