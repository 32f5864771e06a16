"""
FSM состояния для Pomodoro
"""
from aiogram.fsm.state import State, StatesGroup


class PomodoroStates(StatesGroup):
    """Состояния ввода для Pomodoro"""

    # Ждём описание задачи для новой рабочей сессии
    waiting_task = State()
