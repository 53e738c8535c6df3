"""Tests for socket discovery."""

import os
from pathlib import Path

from dockscan.discovery.resolver import (
    SocketResolver,
    colima_profile_sockets,
    resolve_endpoint,
    socket_candidates,
    validate_socket,
)
from dockscan.discovery.types import Backend, BackendPreference


def _real(path: Path) -> str:
    return str(path.resolve())


class TestValidateSocket:
    def test_missing_path(self, short_tmp):
        assert validate_socket(str(short_tmp / "nope.sock")) is None

    def test_regular_file_is_invalid(self, short_tmp):
        regular = short_tmp / "file.sock"
        regular.write_text("x")
        assert validate_socket(str(regular)) is None

    def test_directory_is_invalid(self, short_tmp):
        assert validate_socket(str(short_tmp)) is None

    def test_socket_returns_real_path(self, short_tmp, make_socket):
        sock = make_socket(short_tmp / "d.sock")
        assert validate_socket(str(sock)) == _real(sock)

    def test_symlink_resolves_to_target(self, short_tmp, make_socket):
        target = make_socket(short_tmp / "real.sock")
        link = short_tmp / "link.sock"
        os.symlink(target, link)
        assert validate_socket(str(link)) == _real(target)

    def test_dangling_symlink_is_invalid(self, short_tmp):
        link = short_tmp / "dangling.sock"
        os.symlink(short_tmp / "gone.sock", link)
        assert validate_socket(str(link)) is None


class TestSocketCandidates:
    def test_automatic_order(self, short_tmp):
        (short_tmp / ".colima" / "work").mkdir(parents=True)
        (short_tmp / ".colima" / "alpha").mkdir()
        paths = [c.path for c in socket_candidates(BackendPreference.AUTOMATIC, short_tmp, "/sys.sock")]
        assert paths == [
            str(short_tmp / ".colima" / "docker.sock"),
            str(short_tmp / ".colima" / "default" / "docker.sock"),
            str(short_tmp / ".colima" / "alpha" / "docker.sock"),
            str(short_tmp / ".colima" / "work" / "docker.sock"),
            str(short_tmp / ".docker" / "run" / "docker.sock"),
            "/sys.sock",
        ]

    def test_default_profile_not_duplicated(self, short_tmp):
        (short_tmp / ".colima" / "default").mkdir(parents=True)
        paths = [c.path for c in socket_candidates(BackendPreference.COLIMA, short_tmp)]
        assert len(paths) == len(set(paths)) == 2

    def test_docker_preference_excludes_colima(self, short_tmp):
        candidates = socket_candidates(BackendPreference.DOCKER, short_tmp, "/sys.sock")
        assert {c.backend for c in candidates} == {Backend.DOCKER}

    def test_profiles_missing_root(self, short_tmp):
        assert colima_profile_sockets(short_tmp) == []


class TestResolveEndpoint:
    def test_only_colima_socket_automatic(self, short_tmp, make_socket):
        sock = make_socket(short_tmp / ".colima" / "default" / "docker.sock")
        endpoint = resolve_endpoint(BackendPreference.AUTOMATIC, None, None, short_tmp, str(short_tmp / "none.sock"))
        assert endpoint.backend is Backend.COLIMA
        assert endpoint.socket_path == _real(sock)

    def test_docker_preference_ignores_colima(self, short_tmp, make_socket):
        make_socket(short_tmp / ".colima" / "docker.sock")
        endpoint = resolve_endpoint(BackendPreference.DOCKER, None, None, short_tmp, str(short_tmp / "none.sock"))
        assert endpoint.backend is Backend.UNAVAILABLE
        assert endpoint.socket_path is None
        assert endpoint.detection_log.endswith("Selected: None")

    def test_colima_wins_over_docker(self, short_tmp, make_socket):
        colima = make_socket(short_tmp / ".colima" / "docker.sock")
        make_socket(short_tmp / ".docker" / "run" / "docker.sock")
        endpoint = resolve_endpoint(BackendPreference.AUTOMATIC, None, None, short_tmp, str(short_tmp / "none.sock"))
        assert endpoint.socket_path == _real(colima)

    def test_system_socket_fallback(self, short_tmp, make_socket):
        system = make_socket(short_tmp / "sys.sock")
        endpoint = resolve_endpoint(BackendPreference.AUTOMATIC, None, None, short_tmp, str(system))
        assert endpoint.backend is Backend.DOCKER
        assert endpoint.socket_path == _real(system)

    def test_custom_path_has_priority(self, short_tmp, make_socket):
        make_socket(short_tmp / ".colima" / "docker.sock")
        custom = make_socket(short_tmp / "custom.sock")
        endpoint = resolve_endpoint(BackendPreference.AUTOMATIC, str(custom), None, short_tmp)
        assert endpoint.backend is Backend.CUSTOM
        assert endpoint.socket_path == _real(custom)

    def test_invalid_custom_path_falls_through(self, short_tmp, make_socket):
        colima = make_socket(short_tmp / ".colima" / "docker.sock")
        endpoint = resolve_endpoint(BackendPreference.AUTOMATIC, str(short_tmp / "missing.sock"), None, short_tmp)
        assert endpoint.backend is Backend.COLIMA
        assert endpoint.socket_path == _real(colima)

    def test_docker_host_unix_scheme(self, short_tmp, make_socket):
        env_sock = make_socket(short_tmp / "env.sock")
        endpoint = resolve_endpoint(BackendPreference.AUTOMATIC, None, f"unix://{env_sock}", short_tmp)
        assert endpoint.backend is Backend.CUSTOM
        assert endpoint.socket_path == _real(env_sock)

    def test_docker_host_tcp_ignored(self, short_tmp, make_socket):
        colima = make_socket(short_tmp / ".colima" / "docker.sock")
        endpoint = resolve_endpoint(BackendPreference.AUTOMATIC, None, "tcp://127.0.0.1:2375", short_tmp)
        assert endpoint.backend is Backend.COLIMA
        assert endpoint.socket_path == _real(colima)

    def test_symlinked_candidate_returns_real_path(self, short_tmp, make_socket):
        target = make_socket(short_tmp / "vm" / "real.sock")
        link = short_tmp / ".colima" / "docker.sock"
        link.parent.mkdir(parents=True)
        os.symlink(target, link)
        endpoint = resolve_endpoint(BackendPreference.AUTOMATIC, None, None, short_tmp)
        assert endpoint.socket_path == _real(target)

    def test_detection_log_lines(self, short_tmp, make_socket):
        (short_tmp / ".colima").mkdir()
        (short_tmp / ".colima" / "docker.sock").write_text("")
        sock = make_socket(short_tmp / ".docker" / "run" / "docker.sock")
        endpoint = resolve_endpoint(BackendPreference.AUTOMATIC, None, None, short_tmp, str(short_tmp / "none.sock"))
        log = endpoint.detection_log.splitlines()
        assert log[0] == f"HOME: {short_tmp}"
        assert f"• [Colima] {short_tmp / '.colima' / 'docker.sock'} (type: regular file)" in log
        assert f"✗ [Colima] {short_tmp / '.colima' / 'default' / 'docker.sock'}" in log
        assert log[-1] == f"Selected: Docker -> {_real(sock)}"

    def test_stops_at_first_valid(self, short_tmp, make_socket):
        make_socket(short_tmp / ".colima" / "docker.sock")
        endpoint = resolve_endpoint(BackendPreference.AUTOMATIC, None, None, short_tmp)
        assert "[Docker]" not in endpoint.detection_log


class TestSocketResolver:
    def test_initially_unavailable(self, settings, short_tmp):
        resolver = SocketResolver(settings, environ={}, home=short_tmp)
        assert not resolver.current.is_available

    def test_uses_persisted_preference(self, settings, short_tmp, make_socket):
        make_socket(short_tmp / ".colima" / "docker.sock")
        docker = make_socket(short_tmp / ".docker" / "run" / "docker.sock")
        settings.backend_preference = BackendPreference.DOCKER
        resolver = SocketResolver(settings, environ={}, home=short_tmp, system_socket=str(short_tmp / "none.sock"))
        endpoint = resolver.resolve()
        assert endpoint.backend is Backend.DOCKER
        assert resolver.current.socket_path == _real(docker)

    def test_uses_custom_path_setting(self, settings, short_tmp, make_socket):
        custom = make_socket(short_tmp / "mine.sock")
        settings.custom_socket_path = str(custom)
        resolver = SocketResolver(settings, environ={}, home=short_tmp)
        assert resolver.resolve().backend is Backend.CUSTOM

    def test_reads_docker_host_from_environ(self, settings, short_tmp, make_socket):
        env_sock = make_socket(short_tmp / "env.sock")
        resolver = SocketResolver(settings, environ={"DOCKER_HOST": f"unix:{env_sock}"}, home=short_tmp)
        assert resolver.resolve().socket_path == _real(env_sock)

    def test_socket_disappearing(self, settings, short_tmp, make_socket):
        sock = make_socket(short_tmp / ".colima" / "docker.sock")
        resolver = SocketResolver(settings, environ={}, home=short_tmp, system_socket=str(short_tmp / "none.sock"))
        assert resolver.resolve().is_available
        sock.unlink()
        assert not resolver.resolve().is_available
