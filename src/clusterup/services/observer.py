"""Startup checkpoint observers."""

from typing import List, Tuple


class StartupObserver:
    """Receives stage checkpoints from the orchestrator. Defaults do nothing."""

    def stage_entered(self, stage, message: str):
        pass

    def stage_succeeded(self, stage):
        pass

    def stage_failed(self, stage, error: BaseException):
        pass


class ConsoleObserver(StartupObserver):
    """Prints progress messages to the rich console and the log."""

    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    def stage_entered(self, stage, message: str):
        if message:
            self.console.print(f"[blue]{message}[/blue]")
        self.logger.debug("Entering stage %s", stage.value)

    def stage_succeeded(self, stage):
        self.logger.debug("Stage %s completed", stage.value)

    def stage_failed(self, stage, error: BaseException):
        self.logger.error("Stage %s failed: %s", stage.value, error)


class RecordingObserver(StartupObserver):
    """Keeps every checkpoint as an (event, stage, detail) tuple."""

    def __init__(self):
        self.events: List[Tuple[str, str, str]] = []

    def stage_entered(self, stage, message: str):
        self.events.append(("entered", stage.value, message))

    def stage_succeeded(self, stage):
        self.events.append(("succeeded", stage.value, ""))

    def stage_failed(self, stage, error: BaseException):
        self.events.append(("failed", stage.value, str(error)))

    def stages(self, event: str) -> List[str]:
        return [stage for kind, stage, _ in self.events if kind == event]


class CompositeObserver(StartupObserver):
    def __init__(self, *observers: StartupObserver):
        self.observers = [observer for observer in observers if observer is not None]

    def stage_entered(self, stage, message: str):
        for observer in self.observers:
            observer.stage_entered(stage, message)

    def stage_succeeded(self, stage):
        for observer in self.observers:
            observer.stage_succeeded(stage)

    def stage_failed(self, stage, error: BaseException):
        for observer in self.observers:
            observer.stage_failed(stage, error)
