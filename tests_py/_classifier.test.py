from masterplate._classifier import SourceKind
from masterplate._classifier import classify
from masterplate._classifier import is_page
from masterplate.parser import parse


class TestClassify:

    def test_page(self):
        """Any forest with a content section must be classified as a
        page, and claim only its own registration name.
        """
        forest = parse(
            'home',
            '{{define "helper"}}x{{end}}{{define "__body"}}hi{{end}}'
            + '{{template "master"}}')

        classified = classify('home', forest)

        assert classified.kind is SourceKind.PAGE
        assert classified.claimed_names == frozenset({'home'})
        assert classified.forest is forest

    def test_partial(self):
        """A forest without content sections must be classified as a
        partial, claiming every one of its tree names.
        """
        forest = parse(
            'widgets', '{{define "nav"}}x{{end}}{{define "footer"}}y{{end}}')

        classified = classify('widgets', forest)

        assert classified.kind is SourceKind.PARTIAL
        assert classified.claimed_names == frozenset(
            {'widgets', 'nav', 'footer'})

    def test_section_invocation_alone_is_not_page(self):
        """Invoking a content section (as master templates do) doesn't
        make a forest a page; only defining one does.
        """
        forest = parse('master', '<x>{{template "__body"}}</x>')
        assert classify('master', forest).kind is SourceKind.PARTIAL

    def test_is_page_predicate(self):
        assert is_page(['a', '__b'])
        assert not is_page(['a', 'b_'])
        assert not is_page([])
