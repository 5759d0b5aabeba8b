"""python -m brepl で CLI を起動する。"""

from .cli import app

app()
