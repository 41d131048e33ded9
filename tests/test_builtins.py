"""Builtin commands, called directly and through the executor."""

import asyncio

import pytest  # type: ignore

from command import CommandRegistry, default_registry, echo, wc


class TestEcho:
    @pytest.mark.parametrize(
        "args,expected",
        [
            ([], "\n"),
            (["a", "b"], "a b\n"),
            (["-n", "a"], "a"),
            (["-e", "a\\tb"], "a\tb\n"),
            (["-E", "a\\tb"], "a\\tb\n"),
            (["a", "-n"], "a -n\n"),
        ],
    )
    def test_echo(self, ctx, args, expected):
        assert echo(args, ctx).stdout == expected


class TestCat:
    def test_no_args_echoes_stdin(self, run, ctx):
        ctx.stdin = "piped\n"
        assert run("cat").stdout == "piped\n"

    def test_concatenates_files(self, run, store):
        store.write("/tmp/a", "A\n")
        store.write("/tmp/b", "B\n")
        assert run("cat /tmp/a /tmp/b").stdout == "A\nB\n"

    def test_missing_file_reports_and_continues(self, run, store):
        store.write("/tmp/a", "A\n")
        result = run("cat /nope /tmp/a")
        assert result.stdout == "A\n"
        assert result.stderr == "cat: /nope: No such file or directory\n"
        assert result.exit_code == 1

    def test_directory(self, run):
        assert run("cat /tmp").stderr == "cat: /tmp: Is a directory\n"


class TestWc:
    @pytest.mark.parametrize(
        "args,expected",
        [
            ([], "2 4 16\n"),
            (["-l"], "2\n"),
            (["-w"], "4\n"),
            (["-c"], "16\n"),
            (["-lw"], "2 4\n"),
            (["-c", "-l"], "2 16\n"),
        ],
    )
    def test_stdin_counts(self, ctx, args, expected):
        ctx.stdin = "one two\nthree 4\n"
        assert asyncio.run(wc(args, ctx)).stdout == expected

    def test_files_with_total(self, run, store):
        store.write("/tmp/a", "x\n")
        store.write("/tmp/b", "y z\n")
        assert run("wc -l /tmp/a /tmp/b").stdout == "1 /tmp/a\n1 /tmp/b\n2 total\n"

    def test_bad_option(self, ctx):
        result = asyncio.run(wc(["-q"], ctx))
        assert result.exit_code == 1
        assert "invalid option" in result.stderr


class TestEnvironmentBuiltins:
    def test_pwd(self, run, ctx):
        ctx.env["PWD"] = "/tmp"
        assert run("pwd").stdout == "/tmp\n"

    def test_cd_returns_mutation(self, run):
        result = run("cd /tmp")
        assert result.exit_code == 0
        assert result.mutations.chdir == "/tmp"

    def test_cd_defaults_to_home(self, run):
        assert run("cd").mutations.chdir == "/home/tronos"

    def test_cd_relative(self, run, ctx):
        ctx.env["PWD"] = "/home"
        assert run("cd tronos/..").mutations.chdir == "/home"

    def test_cd_errors(self, run, store):
        store.write("/tmp/file", "")
        assert run("cd /nowhere").stderr == "cd: /nowhere: No such file or directory\n"
        assert run("cd /tmp/file").stderr == "cd: /tmp/file: Not a directory\n"
        assert run("cd a b").exit_code == 1

    def test_env_lists_sorted(self, run):
        assert run("env").stdout == "HOME=/home/tronos\nPATH=/bin\nPWD=/\n"

    def test_export(self, run):
        result = run("export A=1 B=x=y")
        assert result.mutations.exports == {"A": "1", "B": "x=y"}

    def test_export_invalid_identifier(self, run):
        result = run("export 1A=2")
        assert result.exit_code == 1
        assert result.stderr == "export: '1A': not a valid identifier\n"

    def test_export_listing(self, run):
        assert 'declare -x HOME="/home/tronos"\n' in run("export").stdout

    def test_unset(self, run):
        result = run("unset A B-C")
        assert result.mutations.unsets == ["A"]
        assert result.exit_code == 1


class TestAliasBuiltins:
    def test_define_strips_quotes(self, run):
        result = run("alias ll='ls -la' g=\"grep -n\"")
        assert result.mutations.aliases == {"ll": "ls -la", "g": "grep -n"}

    def test_list_and_show(self, run, ctx):
        ctx.aliases.update({"b": "two", "a": "one"})
        assert run("alias").stdout == "alias a='one'\nalias b='two'\n"
        assert run("alias b").stdout == "alias b='two'\n"

    def test_show_missing(self, run):
        result = run("alias nope")
        assert result.exit_code == 1
        assert result.stderr == "alias: nope: not found\n"

    @pytest.mark.parametrize("name", ["1x", "a|b", "a;b"])
    def test_invalid_names(self, run, name):
        result = run(f"alias '{name}=x'")
        assert result.exit_code == 1
        assert not result.mutations.aliases

    def test_unalias(self, run, ctx):
        ctx.aliases["ll"] = "ls"
        assert run("unalias ll").mutations.unaliases == ["ll"]
        assert run("unalias zz").stderr == "unalias: zz: not found\n"

    def test_unalias_all(self, run):
        assert run("unalias -a").mutations.clear_aliases is True

    def test_unalias_usage(self, run):
        result = run("unalias")
        assert result.exit_code == 1
        assert result.stderr == "unalias: usage: unalias [-a] name [name ...]\n"


class TestSessionBuiltins:
    def test_history(self, run, ctx):
        ctx.history.extend(["ls", "pwd", "echo hi"])
        assert run("history").stdout == "     1  ls\n     2  pwd\n     3  echo hi\n"
        assert run("history 1").stdout == "     3  echo hi\n"

    def test_history_bad_count(self, run):
        assert run("history x").exit_code == 1

    def test_source_collects_lines(self, run, store):
        store.write("/home/tronos/rc", "# comment\n\necho one\n  echo two\n")
        result = run("source /home/tronos/rc")
        assert result.mutations.source_lines == ["echo one", "  echo two"]
        assert run(". /home/tronos/rc").mutations.source_lines == result.mutations.source_lines

    def test_source_missing(self, run):
        result = run("source /nope")
        assert result.exit_code == 1
        assert result.stderr == "source: /nope: No such file or directory\n"

    @pytest.mark.parametrize("line,code", [("exit", 0), ("exit 3", 3), ("quit 4", 4)])
    def test_exit(self, run, line, code):
        result = run(line)
        assert result.exit_code == code
        assert result.mutations.exit_code == code

    def test_exit_non_numeric(self, run):
        result = run("exit abc")
        assert result.exit_code == 2
        assert result.stderr == "exit: abc: numeric argument required\n"
        assert result.mutations.exit_code is None

    def test_type(self, run, ctx, registry):
        ctx.aliases["ll"] = "ls -la"
        registry.install("/bin/hello.trx", lambda args, c: None)
        result = run("type ll echo hello nothing")
        assert result.stdout == (
            "ll is aliased to `ls -la'\n"
            "echo is a shell builtin\n"
            "hello is /bin/hello.trx\n"
        )
        assert result.stderr == "type: nothing: not found\n"
        assert result.exit_code == 1


def test_sleep_zero(run):
    assert run("sleep 0").exit_code == 0
    assert run("sleep x").exit_code == 1


class TestRegistry:
    def test_decorator_registers_every_name(self):
        reg = CommandRegistry()

        @reg.builtin("one", "uno")
        def one(args, ctx):
            return None

        assert reg.resolve("one", {}) is one
        assert reg.resolve("uno", {}) is one
        assert reg.resolve("two", {}) is None

    def test_install_requires_absolute_path(self):
        with pytest.raises(ValueError):
            CommandRegistry().install("bin/x", lambda a, c: None)

    def test_find_program_prefers_bare_name(self):
        reg = CommandRegistry()
        reg.install("/bin/x", lambda a, c: None)
        reg.install("/bin/x.trx", lambda a, c: None)
        assert reg.find_program("x", {"PATH": "/bin"}) == "/bin/x"

    def test_default_path(self):
        reg = CommandRegistry()
        reg.install("/bin/x.trx", lambda a, c: None)
        assert reg.find_program("x", {}) == "/bin/x.trx"

    def test_default_registry_names(self):
        reg = default_registry()
        for name in ("echo", "cat", "wc", "cd", "source", ".", "exit", "quit", "type"):
            assert reg.is_builtin(name)
