#!/usr/bin/env python3
"""
Main view class: combines all UI mixins into one runnable Pygame window.

Module layout
─────────────
    ui/
    ├── types.py           – ColorRGB, Camera, CarSnapshot
    ├── constants.py       – ViewConstants mixin (all class-level constants)
    ├── draw_map.py        – MapRenderer mixin (routes, grid cells, alerts, cars)
    ├── hud.py             – HudRenderer mixin (HUD, legend, splash, pause)
    └── pygame_view.py     – RoadReportView (this file – main loop)

The view drives the :class:`~sim.simulation.Simulation` itself: every frame
it steps the simulation until its clock has caught up with the wall clock
scaled by ``sim_seconds_per_frame``.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Optional

import pygame

from config import SIM_SECONDS_PER_FRAME, TARGET_FPS, WINDOW_HEIGHT, WINDOW_WIDTH
from sim.simulation import Simulation

from .constants import ViewConstants
from .draw_map import MapRenderer, to_world_km
from .hud import HudRenderer
from .types import Camera

log = logging.getLogger("ui")


class RoadReportView(
    ViewConstants,
    MapRenderer,
    HudRenderer,
):
    """Top-down map of a running road report simulation."""

    def __init__(
        self,
        sim: Simulation,
        width: int = WINDOW_WIDTH,
        height: int = WINDOW_HEIGHT,
        fps: int = TARGET_FPS,
        sim_seconds_per_frame: float = SIM_SECONDS_PER_FRAME,
    ):
        self.sim = sim
        self.width = width
        self.height = height
        self.fps = fps
        self.sim_seconds_per_frame = sim_seconds_per_frame

        self.screen: Optional[pygame.Surface] = None
        self.clock: Optional[pygame.time.Clock] = None
        self.font_small: Optional[pygame.font.Font] = None
        self.font_tiny: Optional[pygame.font.Font] = None
        self.font_title: Optional[pygame.font.Font] = None

        self.camera = Camera(width, height)
        self._center_camera()
        self.time_seconds = 0.0
        # Simulation time shown; the clock itself only jumps between wakes.
        self.view_time = sim.now

        # UI state
        self.paused = False
        self.show_legend = True
        self.show_radio = True
        self.show_splash = True
        self._screenshot_flash_until = 0.0

    def _center_camera(self) -> None:
        if not self.sim.routes:
            return
        points = [to_world_km(r.longitude, r.latitude) for r in self.sim.routes]
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        self.camera.world_x = (min(xs) + max(xs)) / 2
        self.camera.world_y = (min(ys) + max(ys)) / 2

    # ------------------------------------------------------------------ #
    #  Resize                                                              #
    # ------------------------------------------------------------------ #
    def _handle_resize(self, new_w: int, new_h: int) -> None:
        self.width = max(400, new_w)
        self.height = max(300, new_h)
        self.camera.screen_w = self.width
        self.camera.screen_h = self.height
        self.screen = pygame.display.set_mode(
            (self.width, self.height), pygame.RESIZABLE
        )

    # ------------------------------------------------------------------ #
    #  Screenshot                                                          #
    # ------------------------------------------------------------------ #
    def _take_screenshot(self) -> None:
        if self.screen is None:
            return
        os.makedirs(self.SCREENSHOT_DIR, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = os.path.join(self.SCREENSHOT_DIR, f"sim_{stamp}.png")
        pygame.image.save(self.screen, path)
        self._screenshot_flash_until = self.time_seconds + 0.35

    # ------------------------------------------------------------------ #
    #  Simulation stepping                                                 #
    # ------------------------------------------------------------------ #
    def advance_simulation(self) -> None:
        """Step the simulation up to the next frame's target time."""
        self.sim.start()
        self.view_time = min(
            self.sim.clock.horizon,
            max(self.view_time, self.sim.now) + self.sim_seconds_per_frame,
        )
        while not self.sim.is_finished():
            pending = self.sim.clock.next_wake
            if self.view_time < self.sim.clock.horizon and (
                pending is None or pending > self.view_time
            ):
                break
            if not self.sim.step():
                break

    @staticmethod
    def _load_font(size: int, bold: bool = False) -> pygame.font.Font:
        return pygame.font.SysFont("consolas,menlo,monospace", size, bold=bold)

    # ------------------------------------------------------------------ #
    #  Input                                                               #
    # ------------------------------------------------------------------ #
    def _on_key(self, key: int) -> None:
        if key == pygame.K_SPACE:
            self.paused = not self.paused
        elif key == pygame.K_l:
            self.show_legend = not self.show_legend
        elif key == pygame.K_r:
            self.show_radio = not self.show_radio
        elif key == pygame.K_F12:
            self._take_screenshot()
        elif key in (pygame.K_EQUALS, pygame.K_PLUS, pygame.K_KP_PLUS):
            self.camera.zoom = min(400.0, self.camera.zoom * 1.25)
        elif key in (pygame.K_MINUS, pygame.K_KP_MINUS):
            self.camera.zoom = max(2.0, self.camera.zoom / 1.25)

    def _pump_events(self) -> bool:
        """Handle pending window events; False once the window is closed."""
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                return False
            if event.type == pygame.VIDEORESIZE:
                self._handle_resize(event.w, event.h)
            elif event.type == pygame.KEYDOWN:
                # any key dismisses the splash and is otherwise ignored
                if self.show_splash:
                    self.show_splash = False
                else:
                    self._on_key(event.key)
        return True

    # ------------------------------------------------------------------ #
    #  Frame                                                               #
    # ------------------------------------------------------------------ #
    def draw_frame(self, surface: pygame.Surface) -> None:
        """Map layers bottom to top, then the overlays."""
        cars = self.snapshot_cars()
        surface.fill(self.BG_COLOR)
        self.draw_routes(surface)
        self.draw_missing_cells(surface)
        if self.show_radio:
            self.draw_radio_ranges(surface, cars)
        self.draw_alerts(surface)
        self.draw_cars(surface, cars)

        self.draw_hud(surface, cars)
        if self.show_legend:
            self._draw_legend(surface)
        if self.sim.is_finished():
            self._draw_pause_banner(surface, "FINISHED")
        elif self.paused:
            self._draw_pause_banner(surface)
        if self.time_seconds < self._screenshot_flash_until:
            flash = pygame.Surface(surface.get_size(), pygame.SRCALPHA)
            flash.fill((255, 255, 255, 40))
            surface.blit(flash, (0, 0))

    # ------------------------------------------------------------------ #
    #  Main loop                                                           #
    # ------------------------------------------------------------------ #
    def run(self) -> None:
        pygame.init()
        pygame.display.set_caption("ROAD REPORT SIM")
        self.screen = pygame.display.set_mode(
            (self.width, self.height), pygame.RESIZABLE
        )
        self.clock = pygame.time.Clock()
        self.font_small = self._load_font(13)
        self.font_tiny = self._load_font(11)
        self.font_title = self._load_font(28, bold=True)
        log.info("Viewer opened %dx%d, %.2f sim s per frame",
                 self.width, self.height, self.sim_seconds_per_frame)

        while self._pump_events():
            self.time_seconds += self.clock.tick(self.fps) / 1000.0

            if self.show_splash:
                self.screen.fill(self.BG_COLOR)
                self._draw_splash(self.screen, self.time_seconds)
            else:
                if not self.paused and not self.sim.is_finished():
                    self.advance_simulation()
                self.draw_frame(self.screen)
            pygame.display.flip()

        log.info("Viewer closed at t=%.1f", self.sim.now)
        pygame.quit()


# ---------------------------------------------------------------------- #
#  Convenience entry point                                                 #
# ---------------------------------------------------------------------- #
def run_view(
    sim: Simulation,
    width: int = WINDOW_WIDTH,
    height: int = WINDOW_HEIGHT,
    fps: int = TARGET_FPS,
) -> None:
    view = RoadReportView(sim=sim, width=width, height=height, fps=fps)
    view.run()


if __name__ == "__main__":
    raise SystemExit(
        "pygame_view.py needs a simulation. Run `ROADREPORT_VIEW=1 python main.py` "
        "or call run_view(your_simulation)."
    )
