"""Tests for PathSandbox."""

import pytest

from acpvisor.infra.sandbox import PathSandbox, SandboxViolation


@pytest.fixture
def root(tmp_path):
    project = tmp_path / "project"
    (project / "src").mkdir(parents=True)
    (project / "src" / "main.py").write_text("print('hi')\n")
    return project


@pytest.fixture
def outside(tmp_path):
    other = tmp_path / "outside"
    other.mkdir()
    (other / "secret.txt").write_text("secret")
    return other


class TestPathSandbox:
    def test_root_is_canonical(self, root):
        sandbox = PathSandbox(root)
        assert sandbox.root == root.resolve()

    def test_invalid_root(self, tmp_path):
        with pytest.raises(SandboxViolation, match="invalid root dir"):
            PathSandbox(tmp_path / "missing")

    def test_relative_path_resolved_against_root(self, root):
        sandbox = PathSandbox(root)
        path = sandbox.validate("src/main.py")
        assert path == (root / "src" / "main.py").resolve()
        assert path.is_relative_to(sandbox.root)

    def test_absolute_path_inside_root(self, root):
        sandbox = PathSandbox(root)
        path = sandbox.validate(str(root / "src" / "main.py"))
        assert str(path).startswith(str(sandbox.root))

    def test_root_itself_is_allowed(self, root):
        sandbox = PathSandbox(root)
        assert sandbox.validate(".") == sandbox.root

    @pytest.mark.parametrize("allow_missing", [True, False])
    @pytest.mark.parametrize("path", ["../x", "src/../src/main.py", "src/..", "/tmp/../etc/passwd"])
    def test_parent_segments_rejected(self, root, path, allow_missing):
        sandbox = PathSandbox(root)
        with pytest.raises(SandboxViolation, match="parent paths are not allowed"):
            sandbox.validate(path, allow_missing=allow_missing)

    def test_outside_root_rejected(self, root, outside):
        sandbox = PathSandbox(root)
        with pytest.raises(SandboxViolation, match="outside project root"):
            sandbox.validate(str(outside / "secret.txt"))

    def test_missing_path_rejected(self, root):
        sandbox = PathSandbox(root)
        with pytest.raises(SandboxViolation, match="failed to resolve path"):
            sandbox.validate("src/nope.py")

    @pytest.mark.parametrize("allow_missing", [True, False])
    @pytest.mark.parametrize("path", ["a\x00b", "src/main.py\x00", "src\x00/new.py"])
    def test_nul_byte_rejected(self, root, path, allow_missing):
        sandbox = PathSandbox(root)
        with pytest.raises(SandboxViolation, match="NUL byte"):
            sandbox.validate(path, allow_missing=allow_missing)

    def test_nul_byte_root_rejected(self, tmp_path):
        with pytest.raises(SandboxViolation):
            PathSandbox(f"{tmp_path}\x00x")

    def test_missing_leaf_allowed(self, root):
        sandbox = PathSandbox(root)
        path = sandbox.validate("src/new.py", allow_missing=True)
        assert path == root.resolve() / "src" / "new.py"

    def test_missing_parent_rejected(self, root):
        sandbox = PathSandbox(root)
        with pytest.raises(SandboxViolation, match="invalid parent path"):
            sandbox.validate("nope/new.py", allow_missing=True)

    def test_missing_leaf_outside_root_rejected(self, root, outside):
        sandbox = PathSandbox(root)
        with pytest.raises(SandboxViolation, match="outside project root"):
            sandbox.validate(str(outside / "new.txt"), allow_missing=True)

    def test_symlinked_directory_escape_rejected(self, root, outside):
        (root / "link").symlink_to(outside, target_is_directory=True)
        sandbox = PathSandbox(root)
        with pytest.raises(SandboxViolation, match="outside project root"):
            sandbox.validate("link/secret.txt")

    def test_dangling_symlink_leaf_rejected(self, root, outside):
        (root / "evil").symlink_to(outside / "planted.txt")
        sandbox = PathSandbox(root)
        with pytest.raises(SandboxViolation, match="outside project root"):
            sandbox.validate("evil", allow_missing=True)

    def test_symlink_inside_root_allowed(self, root):
        (root / "alias.py").symlink_to(root / "src" / "main.py")
        sandbox = PathSandbox(root)
        assert sandbox.validate("alias.py") == (root / "src" / "main.py").resolve()
