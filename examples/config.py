"""
Python configuration for the LLM Emulator.

    llm-emulator serve examples/config.py
"""

import math

from llm_emulator.config import case_when, define, http_when, scenario
from llm_emulator.mock.registry import handlers

CAPITALS = {
    'nj': 'Trenton',
    'new jersey': 'Trenton',
    'ny': 'Albany',
    'new york': 'Albany',
}


@handlers.register('capital')
def capital(state, ctx):
    if not state:
        return 'Mock Capital'
    return CAPITALS.get(state.lower(), 'Mock Capital')


def square_root(num, ctx):
    try:
        return f'square root of {num} is {math.sqrt(float(num))}.'
    except ValueError:
        return f'square root of {num} is NaN.'


async def explain(topic, ctx):
    return f'This is a simple explanation of {topic}.'


def is_adult(variables, ctx):
    return variables.get('age', '').isdigit() and int(variables['age']) >= 18


def get_user(request, ctx):
    return {'id': request['params']['id'], 'name': 'Mock User'}


config = define({
    'env': 'local',
    'seed': 42,
    'matching': {
        'order': ['pattern-regex', 'semantic-minilm', 'pattern', 'fuzzy', 'semantic-ngrams'],
        'minilm': {'threshold': 0.72},
        'fuzzy': {'threshold': 0.38},
    },
    'cases': [
        case_when(
            'what is the capital city of {{state}}',
            'capital',
            id='capital',
            latency={'distribution': 'lognormal', 'meanMs': 120, 'p95Ms': 400},
            faults=[{'kind': 'HTTP_429', 'ratio': 0.0, 'when': {'env': 'chaos'}, 'retryAfterSec': 10}],
            validate={
                'request': 'openai.chat.completions.request',
                'response': 'openai.chat.completions.response',
                'mode': 'warn',
            },
        ),
        case_when('explain the concept of {{topic}} in simple terms', explain, id='explain'),
        case_when('What is the square root of {{num}}', square_root, id='sqrt'),
        case_when(
            'summarize the events I have planned this weekend',
            lambda ctx: 'you have no plans this weekend.',
            id='weekend',
            faults=[{'kind': 'HTTP_500', 'ratio': 0.0, 'when': {'env': 'chaos'}}],
        ),
        case_when('generate code', lambda ctx: "print('test')", id='gen-code'),
    ],
    'scenarios': [
        scenario(
            'age-check',
            start='ask_age',
            states={
                'ask_age': {
                    'branches': [
                        {'when': 'I am {{age}}', 'guard': is_adult, 'reply': 'Welcome in.', 'next': 'done'},
                        {'when': 'I am {{age}}', 'reply': 'Sorry, adults only.'},
                    ],
                },
                'done': {'final': True},
            },
        ),
    ],
    'http_mocks': [
        http_when({'method': 'GET', 'path': '/users/:id'}, get_user),
    ],
    'contracts': {'provider': 'openai', 'version': '2025-06-01', 'mode': 'warn'},
    'defaults': {'fallback': "Sorry, I don't have a mock for that yet."},
})
