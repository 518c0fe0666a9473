"""
NeuroSputnik Canned Responses
Deterministic replies used when no model is loaded or generation fails,
and the prompt template used when one is.
"""

from typing import Tuple

ASSISTANT_NAME = "NeuroSputnik"

# First key found in the lowercased message wins.
SMART_RESPONSES: Tuple[Tuple[str, str], ...] = (
    ('привет', 'Привет! 🎉 Я NeuroSputnik - твой оффлайн AI помощник. Работаю полностью без интернета!'),
    ('как дела', 'Отлично! Готов к общению и обучению. Можешь спрашивать о чём угодно или сыграть в обучающие игры!'),
    ('оффлайн', 'Да! Я работаю полностью оффлайн. Все AI модели и данные хранятся на твоём устройстве.'),
    ('обучение', 'Я постоянно учусь на наших разговорах и играх. Чем больше мы общаемся - тем умнее я становлюсь! 🧠'),
    ('игры', 'Во вкладке "🎮 Игры" найдёшь много обучающих игр для тренировки моего AI!'),
    ('память', 'Сыграй в "Тренировку памяти" чтобы помочь мне улучшить запоминание информации!'),
)

DEFAULT_RESPONSE = """🤔 "{message}" - интересный вопрос!

Я работаю в оффлайн режиме, но могу:
• Ответить на основе своих знаний
• Помочь с программированием
• Объяснить сложные темы
• Сыграть с тобой в обучающие игры

Попробуй задать вопрос по-другому или зайди в игры для моего обучения! 🚀"""

WELCOME_MESSAGE = (
    '🚀 Добро пожаловать в NeuroSputnik! '
    'Я работаю полностью оффлайн и могу самообучаться через наши разговоры и игры. '
    'Попробуй вкладку "🎮 Игры" для моего обучения!'
)

PROMPT_TEMPLATE = """Ты - NeuroSputnik, умный AI помощник работающий полностью оффлайн на устройстве пользователя.

Контекст предыдущего общения:
{context}

Текущий вопрос пользователя: {message}

Твои возможности:
- Работа без интернета
- Самообучение через взаимодействие
- Игры для тренировки памяти
- Локальная обработка данных

Ответь полезно и точно:"""


def smart_response(message: str) -> str:
    lowered = message.lower()
    for key, response in SMART_RESPONSES:
        if key in lowered:
            return response
    return DEFAULT_RESPONSE.format(message=message)


def build_prompt(message: str, context: str) -> str:
    return PROMPT_TEMPLATE.format(context=context, message=message)
