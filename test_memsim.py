import io
from contextlib import redirect_stdout

import pytest

import memsim
from backing_store import BackingStore
from virtualsim import PAGE_SIZE, IOFailure, Translator


@pytest.fixture
def backing_file(tmp_path):
    path = tmp_path / "BACKING_STORE.bin"
    path.write_bytes(b"".join(bytes([p]) * PAGE_SIZE for p in range(256)))
    return path


def write_addresses(tmp_path, lines):
    path = tmp_path / "addresses.txt"
    path.write_text("".join(f"{line}\n" for line in lines))
    return path


class TestBackingStore(object):
    def test_read_page(self, backing_file):
        with BackingStore(backing_file) as store:
            assert store.read_page(0) == bytes(PAGE_SIZE)
            assert store.read_page(200) == bytes([200]) * PAGE_SIZE

    def test_missing_file(self, tmp_path):
        with pytest.raises(IOFailure):
            BackingStore(tmp_path / "nope.bin")

    def test_short_read(self):
        store = BackingStore.from_bytes(bytes(PAGE_SIZE + 10))
        with pytest.raises(IOFailure):
            store.read_page(1)

    def test_open_file_object(self, backing_file):
        with open(backing_file, "rb") as f:
            store = BackingStore(f)
            assert store.filename == str(backing_file)
            assert store.read_page(7) == bytes([7]) * PAGE_SIZE

    def test_from_bytes_shares_initialiser(self):
        store = BackingStore.from_bytes(bytes(range(256)) * 2)
        assert store.filename == "<memory>"
        assert store.page_size == PAGE_SIZE
        assert store.read_page(1) == bytes(range(256))

    def test_default_filename(self, tmp_path, monkeypatch):
        (tmp_path / "BACKING_STORE.bin").write_bytes(bytes([9]) * PAGE_SIZE)
        monkeypatch.chdir(tmp_path)
        with BackingStore() as store:
            assert store.read_page(0) == bytes([9]) * PAGE_SIZE
        assert "BACKING_STORE.bin" in memsim.build_parser().format_help()

    def test_closed(self, backing_file):
        store = BackingStore(backing_file)
        store.close()
        with pytest.raises(IOFailure):
            store.read_page(0)


class TestRunner(object):
    def test_read_addresses(self):
        assert list(memsim.read_addresses(io.StringIO("1\n\n 256 \n"))) == [1, 256]
        with pytest.raises(ValueError):
            list(memsim.read_addresses(io.StringIO("1\nabc\n")))

    def test_output_follows_redirected_stdout(self, backing_file):
        buf = io.StringIO()
        with BackingStore(backing_file) as store:
            vm = Translator(store)
            with redirect_stdout(buf):
                memsim.run_translation(io.StringIO("1\n"), vm)
        assert "Virtual address: 1 Physical address: 1 Value: 0" in buf.getvalue()
        assert "Number of Translated Addresses = 1" in buf.getvalue()

    def test_explicit_output_stream(self, backing_file):
        buf = io.StringIO()
        with BackingStore(backing_file) as store:
            memsim.run_translation(io.StringIO("256\n"), Translator(store), out=buf)
        assert buf.getvalue().startswith("Virtual address: 256 Physical address: 0 Value: 1")

    def test_main(self, tmp_path, backing_file, capsys):
        addresses = write_addresses(tmp_path, [1, 256, 257, 1])
        assert memsim.main([str(addresses), "--backing-store", str(backing_file)]) == 0
        out = capsys.readouterr().out.splitlines()
        assert out == [
            "Virtual address: 1 Physical address: 1 Value: 0",
            "Virtual address: 256 Physical address: 256 Value: 1",
            "Virtual address: 257 Physical address: 257 Value: 1",
            "Virtual address: 1 Physical address: 1 Value: 0",
            "Number of Translated Addresses = 4",
            "Page Faults = 2",
            "Page Fault Rate = 0.500",
            "TLB Hits = 2",
            "TLB Hit Rate = 0.500",
        ]

    def test_empty_input(self, tmp_path, backing_file, capsys):
        addresses = write_addresses(tmp_path, [])
        assert memsim.main([str(addresses), "--backing-store", str(backing_file)]) == 0
        out = capsys.readouterr().out
        assert "Number of Translated Addresses = 0" in out
        assert "Page Fault Rate = undefined" in out
        assert "TLB Hit Rate = undefined" in out

    def test_missing_backing_store(self, tmp_path, capsys):
        addresses = write_addresses(tmp_path, [1])
        rc = memsim.main([str(addresses), "--backing-store", str(tmp_path / "missing")])
        assert rc == 1
        assert "Error" in capsys.readouterr().err

    def test_frame_exhaustion_aborts(self, tmp_path, backing_file, capsys):
        addresses = write_addresses(tmp_path, [0, 256, 512])
        rc = memsim.main([str(addresses), "--backing-store", str(backing_file),
                          "--frames", "2"])
        captured = capsys.readouterr()
        assert rc == 1
        assert "Number of Translated Addresses" not in captured.out
        assert "frames" in captured.err

    def test_bad_line(self, tmp_path, backing_file, capsys):
        addresses = write_addresses(tmp_path, [1, "oops"])
        rc = memsim.main([str(addresses), "--backing-store", str(backing_file)])
        assert rc == 1
        assert "line 2" in capsys.readouterr().err

    def test_strict(self, tmp_path, backing_file, capsys):
        addresses = write_addresses(tmp_path, [70000])
        args = [str(addresses), "--backing-store", str(backing_file)]
        assert memsim.main(args) == 0
        assert memsim.main(args + ["--strict"]) == 1
        capsys.readouterr()

    def test_frames_out_of_range(self, tmp_path, backing_file):
        addresses = write_addresses(tmp_path, [1])
        with pytest.raises(SystemExit):
            memsim.main([str(addresses), "--backing-store", str(backing_file),
                         "--frames", "0"])

    def test_cumulative_rates(self, backing_file):
        with BackingStore(backing_file) as store:
            vm = Translator(store)
            vm.translate_all([1, 256, 257, 1])
        rates = memsim.cumulative_rates(vm)
        assert list(rates['accesses']) == [1, 2, 3, 4]
        assert list(rates['page_fault_rate']) == pytest.approx([1.0, 1.0, 2 / 3, 0.5])
        assert list(rates['tlb_hit_rate']) == pytest.approx([0.0, 0.0, 1 / 3, 0.5])

    def test_plot(self, tmp_path, backing_file, capsys):
        addresses = write_addresses(tmp_path, [1, 256, 257, 1, 40000])
        chart = tmp_path / "history.png"
        rc = memsim.main([str(addresses), "--backing-store", str(backing_file),
                          "--plot", str(chart)])
        capsys.readouterr()
        assert rc == 0
        assert chart.stat().st_size > 0
