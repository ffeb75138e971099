from __future__ import annotations

from buzzline.game.models import Player


class Roster:
    def __init__(self, names: list[str]):
        if not names:
            raise ValueError("Roster needs at least one player")
        self.players = [Player(index=index, name=name) for index, name in enumerate(names)]
        self.chooser_index = 0

    def __len__(self) -> int:
        return len(self.players)

    def name_of(self, index: int) -> str:
        if 0 <= index < len(self.players):
            return self.players[index].name
        return f"Player {index + 1}"

    def current_chooser(self) -> Player:
        return self.players[self.chooser_index]

    def rotate_chooser(self) -> Player:
        self.chooser_index = (self.chooser_index + 1) % len(self.players)
        return self.current_chooser()

    def award(self, index: int, points: int) -> bool:
        if not 0 <= index < len(self.players):
            return False
        self.players[index].score += points
        self.chooser_index = index
        return True

    def deduct(self, index: int, points: int) -> bool:
        if not 0 <= index < len(self.players):
            return False
        self.players[index].score -= points
        return True

    def scores(self) -> dict[str, int]:
        return {player.name: player.score for player in self.players}
