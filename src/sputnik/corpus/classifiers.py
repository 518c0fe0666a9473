"""
NeuroSputnik Keyword Classifiers
Topic and sentiment tagging by substring match over ordered keyword lists.

Keywords are lowercase Russian word stems (plus a few language names), so
they match inflected forms.
"""

from typing import Sequence, Tuple

from sputnik.corpus.schemas import Sentiment, Topic

# First matching category wins; order is significant.
TOPIC_RULES: Tuple[Tuple[Topic, Tuple[str, ...]], ...] = (
    (Topic.PROGRAMMING, ('код', 'программир', 'алгоритм', 'python', 'javascript', 'функция', 'переменн')),
    (Topic.SCIENCE, ('наук', 'физик', 'хими', 'биолог', 'математ', 'теория')),
    (Topic.LEARNING, ('обуч', 'изуч', 'курс', 'учеб', 'заняти')),
    (Topic.CREATIVE, ('идея', 'придумай', 'создай', 'креатив', 'творчеств')),
    (Topic.TECHNICAL, ('техник', 'компьютер', 'телефон', 'приложени', 'настройк')),
)

POSITIVE_WORDS: Tuple[str, ...] = ('хорош', 'отличн', 'прекрасн', 'замечательн', 'спасиб', 'понрав', 'люб')
NEGATIVE_WORDS: Tuple[str, ...] = ('плох', 'ужасн', 'отвратительн', 'ненавиж', 'грустн', 'зл', 'разочарован')


def classify_topic(text: str) -> Topic:
    """Return the first topic with a keyword present in ``text``."""
    lowered = text.lower()
    for topic, keywords in TOPIC_RULES:
        if any(keyword in lowered for keyword in keywords):
            return topic
    return Topic.GENERAL


def sentiment_score(text: str,
                    positive: Sequence[str] = POSITIVE_WORDS,
                    negative: Sequence[str] = NEGATIVE_WORDS) -> int:
    """+1 for every positive keyword present, -1 for every negative one."""
    lowered = text.lower()
    score = sum(1 for word in positive if word in lowered)
    score -= sum(1 for word in negative if word in lowered)
    return score


def classify_sentiment(text: str) -> Sentiment:
    score = sentiment_score(text)
    if score > 0:
        return Sentiment.POSITIVE
    if score < 0:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL
