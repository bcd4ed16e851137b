import pytest

from masterplate._types import AsyncSourceLoader
from masterplate._types import SyncSourceLoader
from masterplate.prebaked.loaders import DictSourceLoader
from masterplate.prebaked.loaders import FileSystemLoader


class TestDictSourceLoader:

    def test_load_sync(self):
        loader = DictSourceLoader({'a': 'source'})

        assert loader.load_sync('a') == 'source'
        with pytest.raises(KeyError):
            loader.load_sync('b')

    @pytest.mark.anyio
    async def test_load_async(self):
        loader = DictSourceLoader()
        loader.lookup['a'] = 'source'

        assert await loader.load_async('a') == 'source'

    def test_satisfies_protocols(self):
        loader = DictSourceLoader()
        assert isinstance(loader, SyncSourceLoader)
        assert isinstance(loader, AsyncSourceLoader)


class TestFileSystemLoader:

    def test_load_sync(self, tmp_path):
        """Locators must resolve relative to the root, with or without
        a leading slash.
        """
        (tmp_path / 'views').mkdir()
        (tmp_path / 'views' / 'a.html').write_text('é', encoding='utf-8')
        loader = FileSystemLoader(str(tmp_path))

        assert loader.load_sync('views/a.html') == 'é'
        assert loader.load_sync('/views/a.html') == 'é'

    def test_load_missing(self, tmp_path):
        loader = FileSystemLoader(tmp_path)

        with pytest.raises(FileNotFoundError):
            loader.load_sync('nope.html')

    @pytest.mark.anyio
    async def test_load_async(self, tmp_path):
        (tmp_path / 'a.html').write_text('source', encoding='utf-8')
        loader = FileSystemLoader(tmp_path)

        assert await loader.load_async('a.html') == 'source'

    def test_glob_sync(self, tmp_path):
        """Globbing must return sorted, root-relative POSIX paths, and
        must skip directories even when they match.
        """
        (tmp_path / 'b').mkdir()
        (tmp_path / 'dir.html').mkdir()
        (tmp_path / 'b' / 'z.html').write_text('')
        (tmp_path / 'a.html').write_text('')
        (tmp_path / 'c.txt').write_text('')
        loader = FileSystemLoader(tmp_path)

        assert loader.glob_sync('**/*.html') == ['a.html', 'b/z.html']
        assert loader.glob_sync('*.html') == ['a.html']
        assert loader.glob_sync('*.nope') == []

    @pytest.mark.anyio
    async def test_glob_async(self, tmp_path):
        (tmp_path / 'b').mkdir()
        (tmp_path / 'b' / 'z.html').write_text('')
        (tmp_path / 'a.html').write_text('')
        loader = FileSystemLoader(tmp_path)

        assert await loader.glob_async('**/*.html') == ['a.html', 'b/z.html']
