import importlib

import pytest

from wirebind import ClassScanner, Injector, InjectorConfig, ScanError, named
from sample_beans.clients import Client, ClientUser, GrpcClient, HttpClient
from sample_beans.sub.mocks import MockClient


def test_scan_finds_classes_in_package_and_subpackages():
    classes = ClassScanner(["sample_beans"]).get_all_classes()
    assert {Client, HttpClient, GrpcClient, ClientUser, MockClient} <= set(classes)
    assert GrpcClient.Options in classes


def test_scan_lists_each_class_once():
    classes = ClassScanner(["sample_beans", "sample_beans.sub"]).get_all_classes()
    assert len(classes) == len(set(classes))


def test_scan_ignores_imported_classes():
    classes = ClassScanner(["sample_beans.sub"]).get_all_classes()
    assert MockClient in classes
    assert Client not in classes


def test_scan_result_is_cached():
    scanner = ClassScanner(["sample_beans"])
    assert scanner.get_all_classes() is scanner.get_all_classes()


def test_different_loader_after_scan_raises():
    scanner = ClassScanner(["sample_beans"])
    scanner.get_all_classes()
    with pytest.raises(ScanError):
        scanner.get_all_classes(lambda name: importlib.import_module(name))


def test_import_failure_raises_scan_error():
    with pytest.raises(ScanError):
        ClassScanner(["sample_beans_does_not_exist"]).get_all_classes()


def test_loader_failure_raises_scan_error():
    def loader(name):
        if name.endswith("mocks"):
            raise ImportError(name)
        return importlib.import_module(name)

    with pytest.raises(ScanError):
        ClassScanner(["sample_beans"]).get_all_classes(loader)


def test_empty_package_name_raises():
    with pytest.raises(ValueError):
        ClassScanner([""])


def test_injector_scans_configured_packages():
    injector = Injector(InjectorConfig(packages=["sample_beans"]))
    assert injector.inject(Client).call() == "http"
    assert injector.inject(Client, named("grpc")).call() == "grpc"
    assert isinstance(injector.inject(ClientUser).client, HttpClient)


def test_configured_alternative_replaces_scanned_default():
    injector = Injector(InjectorConfig(packages=["sample_beans"], alternatives=[MockClient]))
    assert injector.inject(ClientUser).client.call() == "mock"
