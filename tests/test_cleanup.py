from unittest.mock import Mock

from capacity_backend.cleanup import remove_test_files
from capacity_backend.errors import VolumeFileError
from capacity_backend.layout import MB, plan_layout


def create_files(layout):
    for path in layout.paths:
        with open(path, 'wb') as f:
            f.write(b"x")


class TestRemoveTestFiles:
    def test_removes_all_files(self, tmp_path):
        layout = plan_layout(10 * MB, 4 * MB, MB, directory=str(tmp_path))
        create_files(layout)

        removed = remove_test_files(layout)

        assert len(removed) == 3
        assert list(tmp_path.iterdir()) == []

    def test_reverse_order(self, tmp_path):
        layout = plan_layout(10 * MB, 4 * MB, MB, directory=str(tmp_path))
        remove = Mock(return_value=True)

        remove_test_files(layout, remove)

        assert [c.args[0] for c in remove.call_args_list] == list(reversed(layout.paths))

    def test_idempotent(self, tmp_path):
        layout = plan_layout(10 * MB, 4 * MB, MB, directory=str(tmp_path))
        create_files(layout)

        assert len(remove_test_files(layout)) == 3
        assert remove_test_files(layout) == []

    def test_partially_created(self, tmp_path):
        layout = plan_layout(10 * MB, 4 * MB, MB, directory=str(tmp_path))
        open(layout.paths[0], 'wb').close()

        assert remove_test_files(layout) == [layout.paths[0]]

    def test_failure_does_not_stop_removal(self, tmp_path):
        layout = plan_layout(10 * MB, 4 * MB, MB, directory=str(tmp_path))
        failing = layout.paths[1]

        def remove(path):
            if path == failing:
                raise VolumeFileError("busy", path)
            return True

        removed = remove_test_files(layout, remove)
        assert removed == [layout.paths[2], layout.paths[0]]

    def test_unrelated_files_untouched(self, tmp_path):
        layout = plan_layout(10 * MB, 4 * MB, MB, directory=str(tmp_path))
        create_files(layout)
        (tmp_path / "photo.jpg").write_bytes(b"data")

        remove_test_files(layout)
        assert [p.name for p in tmp_path.iterdir()] == ["photo.jpg"]
