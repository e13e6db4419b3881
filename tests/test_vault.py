"""
Tests for FileSystemVault: metadata cache, link resolution, file
operations and watchdog notification handling.

Watchdog notifications are fed to _on_fs_event directly so the tests do
not depend on observer timing.
"""

import os

import pytest

from occurrences.events import FileCreated, FileDeleted, FileRenamed, MetadataChanged
from occurrences.store import OccurrenceStore
from occurrences.vault import FileSystemVault


def _write(root, rel, text):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def root(tmp_path):
    vault_root = tmp_path / "vault"
    _write(vault_root, "Occurrences/2025-01-10 0900 Standup.md",
           '---\noccurred_at: "2025-01-10T09:00:00"\nparticipants:\n  - "[[Ana]]"\n---\n\nWith [Bo](People/Bo.md)\n')
    _write(vault_root, "People/Ana.md", "")
    _write(vault_root, "People/Bo.md", "# Bo\n")
    _write(vault_root, ".obsidian/workspace.md", "ignored")
    _write(vault_root, "picture.png", "not markdown")
    return vault_root


@pytest.fixture
def fs_vault(root):
    return FileSystemVault(root)


@pytest.fixture
def received(fs_vault):
    events = []
    fs_vault.subscribe(events.append)
    return events


class TestScan:

    def test_tracks_markdown_outside_hidden_dirs(self, fs_vault):
        assert sorted(f.path for f in fs_vault.list_files()) == [
            "Occurrences/2025-01-10 0900 Standup.md",
            "People/Ana.md",
            "People/Bo.md",
        ]

    def test_header_cache(self, fs_vault):
        header = fs_vault.get_frontmatter("Occurrences/2025-01-10 0900 Standup.md")
        assert header == {"occurred_at": "2025-01-10T09:00:00", "participants": ["[[Ana]]"]}
        assert fs_vault.get_frontmatter("People/Ana.md") == {}
        assert fs_vault.get_frontmatter("missing.md") is None

    def test_header_is_a_copy(self, fs_vault):
        fs_vault.get_frontmatter("People/Ana.md")["x"] = 1
        assert fs_vault.get_frontmatter("People/Ana.md") == {}

    def test_bad_header_is_empty(self, root):
        _write(root, "Occurrences/Broken.md", "---\na: [unclosed\n---\n")
        assert FileSystemVault(root).get_frontmatter("Occurrences/Broken.md") == {}

    def test_file_times(self, fs_vault):
        ref = fs_vault.get_file("People/Ana.md")
        assert ref.ctime > 0 and ref.mtime > 0

    def test_missing_root(self, tmp_path):
        assert FileSystemVault(tmp_path / "nope").list_files() == []


class TestLinks:

    def test_resolves_header_and_body_links(self, fs_vault):
        links = fs_vault.resolved_links()
        assert links["Occurrences/2025-01-10 0900 Standup.md"] == {
            "People/Ana.md": 1,
            "People/Bo.md": 1,
        }

    def test_unresolved_targets_are_skipped(self, root):
        _write(root, "Notes/a.md", "[[Nobody]] and [site](https://example.com)\n")
        assert FileSystemVault(root).resolved_links()["Notes/a.md"] == {}

    def test_relative_and_section_links(self, root):
        _write(root, "People/Cy.md", "See [Bo](Bo.md) and [[Ana#Contact]]\n")
        links = FileSystemVault(root).resolved_links()["People/Cy.md"]
        assert links == {"People/Bo.md": 1, "People/Ana.md": 1}

    def test_find_by_basename(self, fs_vault):
        assert fs_vault.find_by_basename("Bo").path == "People/Bo.md"
        assert fs_vault.find_by_basename("Nobody") is None


class TestOperations:

    @pytest.mark.asyncio
    async def test_create(self, fs_vault, root, received):
        ref = await fs_vault.create("Occurrences/New.md", '---\ntags:\n  - a\n---\n')
        assert ref.path == "Occurrences/New.md"
        assert (root / "Occurrences/New.md").read_text() == '---\ntags:\n  - a\n---\n'
        assert received == [FileCreated("Occurrences/New.md"), MetadataChanged("Occurrences/New.md")]
        assert fs_vault.get_frontmatter("Occurrences/New.md") == {"tags": ["a"]}

    @pytest.mark.asyncio
    async def test_create_makes_folders(self, fs_vault, root):
        await fs_vault.create("Deep/Er/Note.md", "")
        assert (root / "Deep/Er/Note.md").exists()

    @pytest.mark.asyncio
    async def test_create_existing(self, fs_vault):
        with pytest.raises(FileExistsError):
            await fs_vault.create("People/Ana.md", "")

    @pytest.mark.asyncio
    async def test_read(self, fs_vault):
        assert await fs_vault.read("People/Bo.md") == "# Bo\n"
        with pytest.raises(FileNotFoundError):
            await fs_vault.read("People/Nobody.md")

    @pytest.mark.asyncio
    async def test_modify(self, fs_vault, root, received):
        await fs_vault.modify("People/Ana.md", "---\nrole: lead\n---\n")
        assert (root / "People/Ana.md").read_text() == "---\nrole: lead\n---\n"
        assert fs_vault.get_frontmatter("People/Ana.md") == {"role": "lead"}
        assert received == [MetadataChanged("People/Ana.md")]

    @pytest.mark.asyncio
    async def test_modify_missing(self, fs_vault):
        with pytest.raises(FileNotFoundError):
            await fs_vault.modify("People/Nobody.md", "")

    @pytest.mark.asyncio
    async def test_rename(self, fs_vault, root, received):
        old = "Occurrences/2025-01-10 0900 Standup.md"
        new = "Occurrences/2025-01-10 1000 Standup.md"
        await fs_vault.rename(old, new)
        assert not (root / old).exists()
        assert (root / new).exists()
        assert fs_vault.get_file(old) is None
        assert fs_vault.get_frontmatter(new)["occurred_at"] == "2025-01-10T09:00:00"
        assert received == [FileRenamed(path=new, old_path=old), MetadataChanged(new)]
        assert "People/Ana.md" in fs_vault.resolved_links()[new]

    @pytest.mark.asyncio
    async def test_rename_conflict(self, fs_vault):
        with pytest.raises(FileExistsError):
            await fs_vault.rename("People/Ana.md", "People/Bo.md")

    @pytest.mark.asyncio
    async def test_rename_missing(self, fs_vault):
        with pytest.raises(FileNotFoundError):
            await fs_vault.rename("People/Nobody.md", "People/Somebody.md")


class TestWatchNotifications:

    def test_external_create(self, fs_vault, root, received):
        path = _write(root, "Occurrences/Outside.md", "---\ntags: x\n---\n")
        fs_vault._on_fs_event("created", str(path), "")
        assert received == [FileCreated("Occurrences/Outside.md"), MetadataChanged("Occurrences/Outside.md")]
        assert fs_vault.get_frontmatter("Occurrences/Outside.md") == {"tags": "x"}

    def test_echo_of_known_file_is_dropped(self, fs_vault, root, received):
        fs_vault._on_fs_event("created", str(root / "People/Ana.md"), "")
        fs_vault._on_fs_event("modified", str(root / "People/Ana.md"), "")
        assert received == []

    def test_external_modify(self, fs_vault, root, received):
        path = root / "People/Ana.md"
        path.write_text("---\nrole: lead\n---\n")
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 10))
        fs_vault._on_fs_event("modified", str(path), "")
        assert received == [MetadataChanged("People/Ana.md")]
        assert fs_vault.get_frontmatter("People/Ana.md") == {"role": "lead"}

    def test_external_delete(self, fs_vault, root, received):
        path = root / "People/Bo.md"
        path.unlink()
        fs_vault._on_fs_event("deleted", str(path), "")
        assert received == [FileDeleted("People/Bo.md")]
        assert fs_vault.get_file("People/Bo.md") is None

    def test_external_move(self, fs_vault, root, received):
        src, dest = root / "People/Bo.md", root / "People/Robert.md"
        src.rename(dest)
        fs_vault._on_fs_event("moved", str(src), str(dest))
        assert received == [
            FileRenamed(path="People/Robert.md", old_path="People/Bo.md"),
            MetadataChanged("People/Robert.md"),
        ]

    def test_move_to_untracked_is_delete(self, fs_vault, root, received):
        src, dest = root / "People/Bo.md", root / "People/Bo.txt"
        src.rename(dest)
        fs_vault._on_fs_event("moved", str(src), str(dest))
        assert received == [FileDeleted("People/Bo.md")]

    def test_untracked_files_ignored(self, fs_vault, root, received):
        path = _write(root, "notes.txt", "x")
        fs_vault._on_fs_event("created", str(path), "")
        hidden = _write(root, ".trash/old.md", "x")
        fs_vault._on_fs_event("created", str(hidden), "")
        assert received == []

    @pytest.mark.asyncio
    async def test_start_and_stop(self, fs_vault):
        fs_vault.start()
        fs_vault.start()
        fs_vault.stop()
        fs_vault.stop()


class TestWithStore:

    @pytest.mark.asyncio
    async def test_store_over_filesystem(self, fs_vault, root, config):
        config.path = root
        with OccurrenceStore(fs_vault, config) as store:
            assert store.paths() == ["Occurrences/2025-01-10 0900 Standup.md"]
            assert store.get("Occurrences/2025-01-10 0900 Standup.md").participants[0].target == "Ana"

            await fs_vault.create(
                "Occurrences/Lunch.md",
                '---\noccurred_at: "2025-01-10T12:30:00"\n---\n',
            )
            await store.sync.drain()

            # timestamp implied a dated filename, so the file was renamed
            assert sorted(store.paths()) == [
                "Occurrences/2025-01-10 0900 Standup.md",
                "Occurrences/2025-01-10 1230 Lunch.md",
            ]
            assert (root / "Occurrences/2025-01-10 1230 Lunch.md").exists()

            result = store.search(links_to="People/Ana.md")
            assert [o.title for o in result.items] == ["Standup"]
