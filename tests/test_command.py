import pytest

from mpi_provisioner.errors import CommandError
from mpi_provisioner.lib.chroot import image_cmd, mount_chroot_binds, umount_chroot_binds
from mpi_provisioner.lib.command import fmt_argv, run_cmd


def test_run_cmd_returns_output(fake_run):
    fake_run.on("echo", stdout="hi\n")
    r = run_cmd(["echo", "hi"])
    assert r.returncode == 0
    assert r.stdout == "hi\n"
    assert fake_run.calls == [["echo", "hi"]]


def test_run_cmd_raises_on_failure(fake_run):
    fake_run.on("false", returncode=3, stderr="boom")
    with pytest.raises(CommandError) as exc:
        run_cmd(["false"])
    assert exc.value.returncode == 3
    assert exc.value.stderr == "boom"
    assert exc.value.argv == ["false"]


def test_run_cmd_unchecked_failure_is_returned(fake_run):
    fake_run.on("false", returncode=1)
    assert run_cmd(["false"], check=False).returncode == 1


def test_dry_run_does_not_execute(fake_run):
    r = run_cmd(["rm", "-rf", "/"], dry_run=True)
    assert r.returncode == 0
    assert fake_run.calls == []


def test_fmt_argv_quotes():
    assert fmt_argv(["echo", "a b"]) == "echo 'a b'"


class TestImageCmd:
    def test_host_root_runs_directly(self, fake_run):
        image_cmd("/", ["make", "install"])
        assert fake_run.calls == [["make", "install"]]

    def test_chroot_without_cwd(self, fake_run):
        image_cmd("/srv/img", ["dnf", "install", "-y", "git"])
        assert fake_run.calls == [["chroot", "/srv/img", "env", "dnf", "install", "-y", "git"]]

    def test_chroot_with_cwd_and_env(self, fake_run):
        image_cmd("/srv/img", ["./configure", "--prefix=/usr/local"], cwd="/tmp/src", env={"CFLAGS": "-O3"})
        assert fake_run.calls == [
            [
                "chroot",
                "/srv/img",
                "/bin/sh",
                "-c",
                "cd /tmp/src && exec env CFLAGS=-O3 ./configure --prefix=/usr/local",
            ]
        ]

    def test_bind_mounts_skipped_for_host_root(self, fake_run):
        mount_chroot_binds("/")
        umount_chroot_binds("/")
        assert fake_run.calls == []

    def test_bind_mounts_for_chroot(self, fake_run):
        mount_chroot_binds("/srv/img")
        umount_chroot_binds("/srv/img")
        assert fake_run.commands[0] == "mount --bind /dev /srv/img/dev"
        assert fake_run.commands[-1] == "umount -lf /srv/img/dev"
        assert len(fake_run.calls) == 6
