#!/usr/bin/env python3
"""Map layer: routes, directory grid cells, alerts, cars and radio range (mixin)."""

from __future__ import annotations

import math
from typing import Iterable, List, Sequence, Tuple

import pygame

from sim.geo import LAT2KM, LON2KM, lon_scale

from .types import CarSnapshot


def to_world_km(longitude: float, latitude: float) -> Tuple[float, float]:
    """Project degrees onto the same km plane the directory grid uses."""
    return longitude * LON2KM * lon_scale(latitude), latitude * LAT2KM


class MapRenderer:
    """Mixin that draws everything living in world coordinates."""

    def snapshot_cars(self) -> List[CarSnapshot]:
        cars = []
        for car in self.sim.all_cars():
            if car.location is None:
                continue
            x, y = to_world_km(car.location.longitude, car.location.latitude)
            cars.append(CarSnapshot(
                car_id=car.id,
                x_km=x,
                y_km=y,
                heading_deg=car.location.heading,
                speed=car.location.speed,
                messages=len(car.received),
                alerts=len(car.alerts),
            ))
        return cars

    def draw_routes(self, surface: pygame.Surface) -> None:
        for route in self.sim.routes:
            start = to_world_km(route.longitude, route.latitude)
            end_report = route.position_at(route.duration)
            if end_report is None:
                continue
            end = to_world_km(end_report.longitude, end_report.latitude)
            pygame.draw.line(
                surface,
                self.ROUTE_COLOR,
                self.camera.world_to_screen(*start),
                self.camera.world_to_screen(*end),
                1,
            )

    def draw_missing_cells(self, surface: pygame.Surface) -> None:
        """Shade every grid cell the next sweep would send a batch to."""
        grid_km = self.sim.policy.grid_km
        size = max(1, int(grid_km * self.camera.zoom))
        overlay = pygame.Surface((self.width, self.height), pygame.SRCALPHA)
        for batch in self.sim.directory.collect().values():
            x, y = batch.cell
            sx, sy = self.camera.world_to_screen(x * grid_km, (y + 1) * grid_km)
            pygame.draw.rect(
                overlay,
                (*self.MISSING_CELL_COLOR, self.MISSING_CELL_ALPHA),
                (int(sx), int(sy), size, size),
            )
        surface.blit(overlay, (0, 0))

    def draw_alerts(self, surface: pygame.Surface) -> None:
        for info in self.sim.directory.alerts:
            obs = info.observation
            sx, sy = self.camera.world_to_screen(*to_world_km(obs.longitude, obs.latitude))
            color = self.ALERT_COLORS.get(int(obs.kind), (240, 240, 240))
            r = self.ALERT_RADIUS_PX
            points = [(sx, sy - r), (sx + r, sy + r), (sx - r, sy + r)]
            pygame.draw.polygon(surface, color, points)

    def draw_radio_ranges(self, surface: pygame.Surface, cars: Iterable[CarSnapshot]) -> None:
        radius = max(1, int(self.sim.policy.signal_max_range_km * self.camera.zoom))
        overlay = pygame.Surface((self.width, self.height), pygame.SRCALPHA)
        for car in cars:
            sx, sy = self.camera.world_to_screen(car.x_km, car.y_km)
            pygame.draw.circle(
                overlay,
                (*self.RADIO_RANGE_COLOR, self.RADIO_RANGE_ALPHA),
                (int(sx), int(sy)),
                radius,
            )
        surface.blit(overlay, (0, 0))

    def draw_cars(self, surface: pygame.Surface, cars: Sequence[CarSnapshot]) -> None:
        for car in cars:
            sx, sy = self.camera.world_to_screen(car.x_km, car.y_km)
            color = self.CAR_WITH_ALERTS_COLOR if car.alerts else self.CAR_COLOR
            pygame.draw.circle(surface, color, (int(sx), int(sy)), self.CAR_RADIUS_PX)
            # heading tick, 0 = north, clockwise
            rad = math.radians(car.heading_deg)
            tip = (sx + math.sin(rad) * 9, sy - math.cos(rad) * 9)
            pygame.draw.line(surface, color, (sx, sy), tip, 2)
