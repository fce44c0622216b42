import pytest

from usb_installer.config import load_config_file, resolve_config
from usb_installer.errors import PreconditionError


def _resolve(**kw):
    kw.setdefault("distro", "arch")
    kw.setdefault("cli", {"device": "/dev/sdz"})
    kw.setdefault("env", {})
    return resolve_config(**kw)


def test_manifest_defaults():
    cfg = _resolve()
    assert cfg.hostname == "arch-usb"
    assert cfg.username == "archuser"
    assert cfg.cache_policy == "private"
    assert cfg.cache_dir == "/var/cache/usb-installer/arch"
    assert cfg.effective_user_password == "archuser"
    assert cfg.url_for("bootstrap_url").endswith(".tar.zst")


def test_alpine_defaults():
    cfg = _resolve(distro="alpine")
    assert cfg.hostname == "alpine-usb"
    assert cfg.root_password == "alpineusb"
    assert cfg.url_for("iso_url").endswith(".iso")


def test_precedence_cli_over_env_over_file(tmp_path):
    conf = tmp_path / "installer.yaml"
    conf.write_text("hostname: from-file\ntimezone: Europe/Berlin\nkeymap: de\n", encoding="utf-8")
    env = {"USB_INSTALLER_HOSTNAME": "from-env", "USB_INSTALLER_KEYMAP": "fr"}

    cfg = _resolve(cli={"device": "/dev/sdz", "hostname": "from-cli"}, env=env, config_path=str(conf))
    assert cfg.hostname == "from-cli"
    assert cfg.keymap == "fr"
    assert cfg.timezone == "Europe/Berlin"

    cfg = _resolve(env=env, config_path=str(conf))
    assert cfg.hostname == "from-env"


def test_unprefixed_environment_is_ignored():
    cfg = _resolve(env={"HOSTNAME": "buildbox", "TZ": "UTC"})
    assert cfg.hostname == "arch-usb"
    assert cfg.timezone == "America/New_York"


def test_device_from_environment():
    cfg = _resolve(cli={}, env={"USB_INSTALLER_DEVICE": "/dev/sdy"})
    assert cfg.device == "/dev/sdy"


def test_device_required():
    with pytest.raises(PreconditionError, match="--device"):
        _resolve(cli={})


def test_unknown_distro():
    with pytest.raises(PreconditionError, match="Unsupported distro"):
        _resolve(distro="gentoo")


@pytest.mark.parametrize(
    "key,value",
    [
        ("hostname", "-bad"),
        ("username", "Root User"),
        ("timezone", "../../etc/shadow"),
        ("cache_policy", "shared"),
        ("workspace_base", "relative/dir"),
    ],
)
def test_invalid_values_rejected(key, value):
    with pytest.raises(PreconditionError):
        _resolve(cli={"device": "/dev/sdz", key: value})


def test_config_file_unknown_key(tmp_path):
    conf = tmp_path / "c.yaml"
    conf.write_text("hostname: x\ncolour: blue\n", encoding="utf-8")
    with pytest.raises(PreconditionError, match="colour"):
        load_config_file(str(conf))


def test_config_file_must_be_mapping(tmp_path):
    conf = tmp_path / "c.yaml"
    conf.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(PreconditionError):
        load_config_file(str(conf))


def test_config_file_passwords(tmp_path):
    conf = tmp_path / "c.yml"
    conf.write_text("root_password: hunter2\nuser_password: 12345\n", encoding="utf-8")
    cfg = _resolve(config_path=str(conf))
    assert cfg.root_password == "hunter2"
    assert cfg.effective_user_password == "12345"
    public = cfg.public_dict()
    assert "root_password" not in public
    assert "user_password" not in public
    assert public["hostname"] == "arch-usb"


def test_default_root_password_warns(caplog):
    with caplog.at_level("WARNING"):
        _resolve()
    assert "default root password" in caplog.text
