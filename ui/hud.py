#!/usr/bin/env python3
"""HUD panel, legend, splash screen, and pause banner (mixin)."""

from __future__ import annotations

from typing import Sequence

import pygame

from .types import CarSnapshot

# Counters shown in the HUD, in display order.
_HUD_COUNTERS = (
    ("BROADCASTS", "broadcasts"),
    ("ACCEPTED", "rx_accepted"),
    ("DUPLICATE", "rx_duplicate"),
    ("WEAK", "rx_weak"),
    ("FAR", "rx_far"),
    ("ALERTS", "alerts_generated"),
    ("UPLOADS", "location_uploads"),
    ("DELIVERED", "deliveries"),
    ("MISSED", "delivery_failures"),
)


class HudRenderer:
    """Mixin that draws every overlay / HUD element."""

    # ------------------------------------------------------------------ #
    #  Main HUD panel                                                      #
    # ------------------------------------------------------------------ #

    def draw_hud(self, surface: pygame.Surface, cars: Sequence[CarSnapshot]) -> None:
        if self.font_small is None or self.font_tiny is None:
            return

        report = self.sim.metrics.report()
        row_height = 16
        header_h = 44
        panel_height = header_h + len(_HUD_COUNTERS) * row_height + 8
        panel_width = 220
        panel_rect = pygame.Rect(16, self.height - panel_height - 16, panel_width, panel_height)

        pygame.draw.rect(surface, self.HUD_BG_COLOR, panel_rect, border_radius=6)
        pygame.draw.rect(surface, self.HUD_BORDER_COLOR, panel_rect, width=1, border_radius=6)

        title = self.font_small.render(f"T {self.view_time:7.1f} s", True, (240, 240, 240))
        surface.blit(title, (panel_rect.x + 10, panel_rect.y + 6))
        sub = self.font_tiny.render(
            f"CARS {len(cars)}   LOGGED ALERTS {len(self.sim.directory.alerts)}",
            True,
            (180, 180, 180),
        )
        surface.blit(sub, (panel_rect.x + 10, panel_rect.y + 26))

        y = panel_rect.y + header_h
        for label, name in _HUD_COUNTERS:
            text = self.font_tiny.render(f"{label:<11}{report[name]:>9}", True, (200, 200, 200))
            surface.blit(text, (panel_rect.x + 10, y))
            y += row_height

    # ------------------------------------------------------------------ #
    #  Splash                                                              #
    # ------------------------------------------------------------------ #

    def _draw_splash(self, surface: pygame.Surface, tick: float) -> None:
        if self.font_title is None or self.font_small is None:
            return
        title = self.font_title.render("ROAD REPORT SIM", True, (240, 240, 240))
        surface.blit(
            title,
            title.get_rect(center=(self.width // 2, self.height // 2 - 30)),
        )
        if int(tick * 2) % 2 == 0:
            prompt = self.font_small.render("Press any key to start", True, (160, 160, 160))
            surface.blit(
                prompt,
                prompt.get_rect(center=(self.width // 2, self.height // 2 + 20)),
            )
        lines = [
            "SPACE  Pause/Resume",
            "+ / -  Zoom in/out",
            "R      Toggle radio range",
            "L      Toggle legend",
            "F12    Screenshot",
        ]
        y = self.height // 2 + 60
        for line in lines:
            t = self.font_tiny.render(line, True, (100, 100, 100)) if self.font_tiny else None
            if t:
                surface.blit(t, t.get_rect(center=(self.width // 2, y)))
                y += 16

    # ------------------------------------------------------------------ #
    #  Legend                                                              #
    # ------------------------------------------------------------------ #

    def _draw_legend(self, surface: pygame.Surface) -> None:
        if self.font_tiny is None:
            return
        x = self.width - 130
        y = self.height - 16 - len(self.LEGEND_ITEMS) * 18 - 8
        box_w, box_h = 122, len(self.LEGEND_ITEMS) * 18 + 10
        pygame.draw.rect(
            surface, self.HUD_BG_COLOR, (x - 6, y - 4, box_w, box_h), border_radius=4
        )
        pygame.draw.rect(
            surface, self.HUD_BORDER_COLOR, (x - 6, y - 4, box_w, box_h), width=1, border_radius=4
        )
        for label, color in self.LEGEND_ITEMS:
            pygame.draw.circle(surface, color, (x + 4, y + 6), 4)
            text = self.font_tiny.render(label, True, (200, 200, 200))
            surface.blit(text, (x + 14, y))
            y += 18

    # ------------------------------------------------------------------ #
    #  Pause / finished banner                                             #
    # ------------------------------------------------------------------ #

    def _draw_pause_banner(self, surface: pygame.Surface, label: str = "PAUSED") -> None:
        overlay = pygame.Surface((self.width, self.height), pygame.SRCALPHA)
        overlay.fill((0, 0, 0, 100))
        surface.blit(overlay, (0, 0))
        if self.font_title:
            text = self.font_title.render(label, True, (220, 220, 220))
            surface.blit(text, text.get_rect(center=(self.width // 2, self.height // 2)))
