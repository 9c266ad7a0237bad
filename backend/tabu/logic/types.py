"""The room variant the session layer holds."""

from tabu.logic.classic import ClassicRoom
from tabu.logic.practice import PracticeRoom

# Dispatch on ``room.mode``; the two shapes share only the RoomBase envelope.
Room = ClassicRoom | PracticeRoom
