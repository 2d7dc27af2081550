import subprocess
import sys


def git_commit_hash() -> str:
    try:
        return subprocess.check_output(["git", "rev-parse", "--short", "HEAD"]).decode().strip()
    except (OSError, subprocess.CalledProcessError):
        return "unknown"


def _version(module: str) -> str:
    try:
        mod = __import__(module)
    except ImportError:
        return "not installed"
    return getattr(mod, "__version__", "unknown")


def main() -> None:
    print(f"python={sys.version.split()[0]}")
    for module in ("dee_core", "torch", "numpy", "scipy", "pydantic", "yaml", "tifffile"):
        print(f"{module}={_version(module)}")
    try:
        import torch

        cuda_ok = torch.cuda.is_available()
        ndev = torch.cuda.device_count() if cuda_ok else 0
    except ImportError:
        cuda_ok = False
        ndev = 0
    print(f"cuda_available={cuda_ok}")
    print(f"cuda_devices={ndev}")
    print(f"commit={git_commit_hash()}")


if __name__ == "__main__":
    main()
