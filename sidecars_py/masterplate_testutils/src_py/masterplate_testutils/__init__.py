from unittest.mock import Mock

from masterplate._types import RenderConfig


def _variable_escaper_spec(value: str) -> str: ...


fake_render_config = RenderConfig(
    variable_escaper=Mock(wraps=lambda value: value))

zderr_render_config = RenderConfig(
    variable_escaper=Mock(
        spec=_variable_escaper_spec, side_effect=ZeroDivisionError()))


class RecordingSink:
    """A text sink that remembers each individual write, so tests can
    check what was written (and when) rather than just the end result.
    """
    writes: list[str]

    def __init__(self):
        self.writes = []

    def write(self, text: str) -> int:
        self.writes.append(text)
        return len(text)

    def getvalue(self) -> str:
        return ''.join(self.writes)


SIMPLE_MASTERPAGE = '<x>{{template "__body"}}</x>'
SIMPLE_HOMEPAGE = '{{define "__body"}}hi{{end}}{{template "masterpage"}}'

LAYOUT_MASTERPAGE = '''<html>
<head><title>{{optional_template "__title" .}}</title></head>
<body>{{template "__body" .}}</body>
</html>'''
LAYOUT_HOMEPAGE = (
    '{{define "__title"}}{{.title}}{{end}}'
    + '{{define "__body"}}<p>{{.greeting}}, {{$.name}}</p>{{end}}'
    + '{{template "layout" .}}')

# Outermost (a plain partial), then the intermediate page, then the content
# page. Each wraps ``__body`` from the next one in.
NESTED_OUTER_MASTER = '<outer>{{template "__body" .}}</outer>'
NESTED_INNER_MASTER = (
    '{{define "__body"}}<inner>{{template "__body" .}}</inner>{{end}}'
    + '{{template "outer_master" .}}')
NESTED_CONTENT_PAGE = (
    '{{define "__body"}}<content>{{.text}}</content>{{end}}'
    + '{{template "inner_master" .}}')
